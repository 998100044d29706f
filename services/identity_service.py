"""
身分服務：正規化預測值與地址

純計算邏輯，不涉及狀態轉換

預測值是 32 bytes 的不透明值，以 0x 開頭的 64 位 hex 字串表示：
- "0x41"    -> 0x41 後面補零到 32 bytes（與 bytes32 的右側補零相同）
- "A"       -> UTF-8 編碼後右側補零
- 全部為零  -> none sentinel（以 None 表示）
"""
import hashlib
import re
from typing import Optional
from uuid import UUID

from core.exceptions import InvalidPrediction

PREDICTION_BYTES = 32
NONE_PREDICTION = "0x" + "00" * PREDICTION_BYTES

_HEX_RE = re.compile(r"^0x[0-9a-fA-F]*$")
_NULL_ADDRESS_RE = re.compile(r"^(0x)?0*$")


def normalize_prediction(value: Optional[str]) -> Optional[str]:
    """
    把任意輸入的預測值轉成標準的 bytes32 hex 字串

    參數：
        value: "0x" 開頭的 hex，或一般字串（UTF-8，最多 32 bytes）

    返回：
        標準化的 hex 字串；如果是 none sentinel 則返回 None

    異常：
        InvalidPrediction: 超過 32 bytes
    """
    if value is None or value == "":
        return None

    if _HEX_RE.match(value):
        digits = value[2:]
        if len(digits) % 2:
            digits = "0" + digits
        raw = bytes.fromhex(digits)
    else:
        raw = value.encode("utf-8")

    if len(raw) > PREDICTION_BYTES:
        raise InvalidPrediction(
            f"Prediction must fit in {PREDICTION_BYTES} bytes, got {len(raw)}"
        )

    normalized = "0x" + raw.ljust(PREDICTION_BYTES, b"\x00").hex()
    if normalized == NONE_PREDICTION:
        return None
    return normalized


def is_null_address(address: Optional[str]) -> bool:
    """
    檢查是否為 null identity（空字串或全零地址）

    用途：
        close_round 拒絕把餘額轉到 null identity
    """
    if address is None:
        return True
    return bool(_NULL_ADDRESS_RE.match(address.strip()))


def normalize_address(address: str) -> str:
    """地址不區分大小寫"""
    return address.strip().lower()


def generate_registry_address(registry_id: UUID) -> str:
    """
    為註冊表生成自己的 20 bytes 身分

    格式：0x + sha256(registry_id) 的前 40 位 hex

    注意：
    - 註冊表以這個身分擔任它所建立回合的管理者
    - 由 id 決定，所以同一個註冊表永遠得到同一個地址
    """
    digest = hashlib.sha256(registry_id.bytes).hexdigest()
    return "0x" + digest[:40]
