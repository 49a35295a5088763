"""
Web配置模块（dbquerylog.core.config.web）

本模块包含只读查询日志 API 的配置类定义。
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class WebServerSettings:
    """
    Web服务器配置

    属性：
        host: 服务器绑定地址
        port: 服务器端口
        reload: 开发模式下是否启用热重载
    """

    host: str = "127.0.0.1"
    port: int = 8000
    reload: bool = False


@dataclass(frozen=True)
class WebApiSettings:
    """
    Web API配置

    属性：
        title: API标题
        description: API描述
        version: API版本
        docs_url: Swagger文档路径
        max_entries: 单次读取日志条目上限
    """

    title: str = "DB Query Logger API"
    description: str = "数据库查询日志只读查看 API"
    version: str = "0.1.0"
    docs_url: str = "/docs"
    max_entries: int = 1000


@dataclass(frozen=True)
class WebSettings:
    server: WebServerSettings = WebServerSettings()
    api: WebApiSettings = WebApiSettings()
