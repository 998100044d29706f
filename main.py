from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

import models  # noqa: F401
from database import Base, SessionLocal, engine, get_settings
from core import clock
from api import rounds, stakes, registries, ledger

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立帳本資料表
    Base.metadata.create_all(bind=engine)
    # 時鐘列只在這裡建立，讀取端點不寫入
    db = SessionLocal()
    try:
        clock.ensure_clock(db)
        db.commit()
    finally:
        db.close()
    yield
    # Shutdown: 如果需要清理資源可以加在這裡


app = FastAPI(
    title="Pari-mutuel Escrow API",
    description="Wagering rounds with time-windowed betting, outcome publication and proportional payouts",
    version="1.0.0",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure this properly in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(rounds.router)
app.include_router(stakes.router)
app.include_router(registries.router)
app.include_router(ledger.router)


@app.get("/")
def root():
    return {"message": "Pari-mutuel Escrow API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
