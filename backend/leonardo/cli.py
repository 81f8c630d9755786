"""
命令行入口

用法：
    leonardo run                      运行聊天机器人
    leonardo trace INPUT [-o OUT]     本地描摹单张图像为SVG
    leonardo init-store               初始化产物仓库
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from .config import get_config, reload_config, setup_logging

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leonardo",
        description="Trace chat-submitted images to SVG and commit them to a git repository.",
    )
    parser.add_argument(
        "--config",
        default="",
        help="运行期配置YAML（默认：config/leonardo.yaml）",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="运行聊天机器人")

    trace = sub.add_parser("trace", help="本地描摹单张图像")
    trace.add_argument("input", help="输入图像路径")
    trace.add_argument("-o", "--output", default="", help="输出路径（默认：输入文件同名，扩展名取产物格式）")
    trace.add_argument(
        "--backend",
        choices=["vtracer", "potrace"],
        default="",
        help="描摹后端（默认取配置）",
    )

    sub.add_parser("init-store", help="初始化产物仓库")
    return parser


async def _run_bot() -> int:
    from .app import Application

    app = Application()
    await app.run()
    return 0


async def _trace_file(input_path: Path, output_path: Path | None, backend: str) -> int:
    from .imaging import ImageFetcher, TraceAdapter
    from .imaging.tracers import create_converter, create_tracer
    from .interfaces import StageError
    from .models import ImageReference

    config = get_config()
    trace_config = config.trace.model_copy(update={"backend": backend}) if backend else config.trace

    fetcher = ImageFetcher()
    adapter = TraceAdapter(create_tracer(trace_config), converter=create_converter(trace_config))
    try:
        reference = ImageReference(data=input_path.read_bytes())
        raw = await fetcher.fetch(reference, config.fetch.max_image_bytes)
        artifact = await adapter.trace(input_path.stem, raw)
    except StageError as e:
        print(f"{input_path.name}: {e.category.value}.{e.kind.value} {e.detail}")
        return 1
    finally:
        await fetcher.aclose()
        adapter.close()

    output_path = output_path or input_path.with_suffix(f".{artifact.extension}")
    output_path.write_bytes(artifact.content)
    print(f"{input_path.name} -> {output_path} ({artifact.byte_size} bytes)")
    return 0


async def _init_store() -> int:
    from .app import build_store

    store = build_store(get_config())
    await store.initialize()
    print(f"产物仓库就绪: {store.repo.path}")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)

    config = reload_config(args.config) if args.config else get_config()
    setup_logging(config.logging)

    if args.command == "run":
        return asyncio.run(_run_bot())

    if args.command == "trace":
        input_path = Path(args.input)
        if not input_path.exists():
            print(f"文件不存在: {input_path}")
            return 1
        output_path = Path(args.output) if args.output else None
        return asyncio.run(_trace_file(input_path, output_path, args.backend))

    if args.command == "init-store":
        return asyncio.run(_init_store())

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
