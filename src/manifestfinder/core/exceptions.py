"""
ManifestFinder 自定义异常类

这些异常只在查找流程内部流转，最终都会被 ManifestFinder 转换为“未找到”，
不会传递到 HTTP 层。
"""


class ManifestFinderError(Exception):
    """查找流程异常（基类）"""
    pass


class SessionSetupError(ManifestFinderError):
    """浏览器会话创建失败

    启动浏览器、创建页面或开启请求拦截时出错。
    """
    pass


class NavigationError(ManifestFinderError):
    """页面导航失败或超时

    只记录警告，不会覆盖已经捕获到的链接。
    """

    def __init__(self, message: str, url: str = None):
        super().__init__(message)
        self.url = url


class InterceptionAlreadyHandledError(ManifestFinderError):
    """同一个请求被重复放行/中止

    调用方检测到后直接跳过。
    """
    pass


class TeardownError(ManifestFinderError):
    """关闭会话或关闭拦截失败"""
    pass
