"""
Pool Volume Service 主程序入口

使用方式:
    python -m pool_volume cache [--config config.yaml]
    python -m pool_volume server [--config config.yaml]
"""

import argparse

from .config import load_config, set_config
from .main import run_service, run_cache_service, run_volume_server


def main():
    """主程序入口"""
    parser = argparse.ArgumentParser(prog="pool_volume", description="Pool 成交量查询服务")
    parser.add_argument("service", choices=["cache", "server"], help="要启动的服务")
    parser.add_argument("--config", default=None, help="配置文件路径（默认 config.yaml）")
    args = parser.parse_args()

    config = load_config(args.config)
    set_config(config)
    entry = run_cache_service if args.service == "cache" else run_volume_server
    run_service(entry, config)


if __name__ == "__main__":
    main()
