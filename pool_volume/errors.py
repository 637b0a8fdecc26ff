"""
异常定义

按故障来源划分：
- 存储层：StoreUnavailableError
- 缓存节点：PeerCacheUnreachableError / MalformedPeerResponseError
- 请求路径：VolumeNotFoundError / UpstreamError / ShutdownInProgressError
"""


class VolumeServiceError(Exception):
    """所有业务异常的基类"""


class StoreUnavailableError(VolumeServiceError):
    """存储连接或查询失败"""


class PeerCacheUnreachableError(VolumeServiceError):
    """缓存节点网络错误、超时或返回非 2xx"""


class MalformedPeerResponseError(VolumeServiceError):
    """缓存节点返回的响应体无法解析"""


class VolumeNotFoundError(VolumeServiceError):
    """缓存中不存在该 pool（未注册）"""

    def __init__(self, pool_address: str):
        self.pool_address = pool_address
        super().__init__(f"Pool {pool_address} is not registered in cache")


class UpstreamError(VolumeServiceError):
    """缓存与源存储均不可用"""


class ShutdownInProgressError(VolumeServiceError):
    """服务正在退出，拒绝新请求"""
