"""
核心業務邏輯層

這個 package 包含所有會改變帳本狀態的邏輯，包括：
- Manager：管理 WageringRound 與 Registry 的生命週期
- Clock / Custody / Notifier：邏輯時鐘、託管轉帳、事件通知
- Authorization：管理者權限檢查
- Locks：並發控制工具
"""
