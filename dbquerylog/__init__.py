"""dbquerylog：数据库查询日志（文本/JSON 文件驱动 + 异步落盘）"""

__version__ = "0.1.0"
