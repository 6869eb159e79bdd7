"""
Sigfox 回调服务入口点

此模块提供了启动回调服务的命令行入口点。
"""
import argparse
import os
import sys

import uvicorn

from ..common.config import get_section
from ..common.logger import get_logger
from .app import create_app

# 创建主模块日志器
logger = get_logger("main")


def parse_args(argv=None):
    """解析命令行参数"""
    config = get_section('callback')

    parser = argparse.ArgumentParser(description="Sigfox 回调服务")
    parser.add_argument(
        "--host",
        type=str,
        default=config.get('host', '0.0.0.0'),
        help=f"服务监听的主机地址 (默认: {config.get('host', '0.0.0.0')})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=config.get('port', 8080),
        help=f"服务监听的端口 (默认: {config.get('port', 8080)})"
    )
    parser.add_argument(
        "--config-file",
        type=str,
        default=os.environ.get("CONFIG_PATH", ""),
        help="配置文件路径 (默认: 使用环境变量CONFIG_PATH或默认路径)"
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="启用调试模式"
    )
    return parser.parse_args(argv)


def main(argv=None):
    """服务入口点函数"""
    args = parse_args(argv)

    if args.config_file:
        os.environ["CONFIG_PATH"] = args.config_file
        logger.info(f"使用配置文件: {args.config_file}")

    service_name = get_section('callback').get('service_name', 'sigfox-callback')
    logger.info(f"启动 {service_name} 服务, 主机: {args.host}, 端口: {args.port}")

    try:
        app = create_app()
        uvicorn.run(
            app,
            host=args.host,
            port=args.port,
            log_level="debug" if args.debug else "info"
        )
    except Exception as e:
        logger.exception(f"服务启动失败: {str(e)}")
        sys.exit(1)


if __name__ == "__main__":
    main()
