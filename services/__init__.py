"""
服務層

這個 package 包含純計算邏輯，不負責狀態轉換：
- RoundPhaseService：由時鐘推導回合階段
- PayoffService：派彩比例與獎金計算
- IdentityService：預測值與地址的正規化
- HistoryService：參與者的事件紀錄
"""
