"""
REST API

- 缓存服务：POST /volume（供对外服务读穿透使用）
- 对外服务：POST /volume（先查缓存，失败回退数据库）
"""
