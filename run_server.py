#!/usr/bin/env python3
"""
Run the ERP Desk API server.

Usage:
    python run_server.py [--port PORT] [--reload] [--config erp.yaml]

Without ERP_STORE_ENDPOINT set, the server runs on generated sample data.
"""
import argparse
import uvicorn

from erp_desk.config import Config, config


def main():
    parser = argparse.ArgumentParser(description="Run the ERP Desk API server")
    parser.add_argument("--port", type=int, default=8000, help="Port to run on (default: 8000)")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")
    parser.add_argument("--config", help="YAML file overlaid on the environment settings")
    args = parser.parse_args()

    if args.config:
        Config.from_yaml(args.config, base=config)

    store = config.store.endpoint if config.store.is_configured() else "in-memory sample data"
    print(f"ERP Desk API on http://{args.host}:{args.port} (docs at /docs)")
    print(f"Store: {store} | container={config.store.container} | database={config.store.database}")

    uvicorn.run(
        "erp_desk.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
