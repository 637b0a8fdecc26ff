"""
Pool Volume Service - Pool 成交量查询服务

负责：
- 每 30s 重新聚合所有注册 pool 的 5 分钟成交量并写入内存缓存
- 缓存服务对外提供内存缓存查询
- 对外服务读穿透：先查缓存服务，失败时直接查询数据库
- 持续生成模拟交易写入数据库
- 收到退出信号后有序停止所有循环
"""

__version__ = "1.0.0"
