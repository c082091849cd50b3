from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .background import BackgroundWorker, MessageChannel, PageTextExtractor, TabTracker
from .config import ConfigError, PanelConfig, load_openrouter_api_key, load_panel_config
from .controller import PanelController, PanelEvent, PanelState
from .extraction import ExtractionError, ExtractionGateway
from .storage import DurableStorage, SessionStorage
from .summaries import (
    AuthenticationError,
    HistoryStatus,
    HistoryStore,
    OpenRouterClient,
    OpenRouterEngine,
    SummarizationSessionManager,
    SummarizationSettings,
)


def build_openrouter_client(config: PanelConfig) -> Optional[OpenRouterClient]:
    """Return a client, or ``None`` when no API key is configured."""
    api_key = load_openrouter_api_key()
    if not api_key:
        return None

    base_url = os.getenv("OPENROUTER_API_BASE", "https://openrouter.ai/api/v1")
    referer = os.getenv("OPENROUTER_REFERER", "https://github.com/smartshare/smartshare-panel") or None
    title = os.getenv("OPENROUTER_TITLE", "smartshare-panel") or None
    try:
        return OpenRouterClient(
            api_key=api_key,
            base_url=base_url,
            referer=referer,
            title=title,
            model_cache_path=config.model_cache_path,
        )
    except AuthenticationError:
        return None


@dataclass
class PanelRuntime:
    controller: PanelController
    worker: BackgroundWorker
    history: HistoryStore
    extractor: PageTextExtractor
    client: Optional[OpenRouterClient]

    async def aclose(self) -> None:
        self.controller.close()
        await self.extractor.aclose()
        if self.client is not None:
            self.client.close()


def build_runtime(
    config: PanelConfig,
    *,
    settings: Optional[SummarizationSettings] = None,
    user_activation: bool = True,
) -> PanelRuntime:
    session_storage = SessionStorage()
    history = HistoryStore(DurableStorage(config.storage_path))
    extractor = PageTextExtractor()
    worker = BackgroundWorker(TabTracker(), extractor, session_storage)
    channel = MessageChannel(worker.handle_message)
    client = build_openrouter_client(config)
    engine = OpenRouterEngine(
        client,
        config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
    )
    controller = PanelController(
        session_storage=session_storage,
        gateway=ExtractionGateway(channel.send_message, session_storage),
        manager=SummarizationSessionManager(engine),
        history=history,
        settings=settings or config.settings,
        user_activation=user_activation,
    )
    return PanelRuntime(
        controller=controller,
        worker=worker,
        history=history,
        extractor=extractor,
        client=client,
    )


def configure_logging(level_name: str, log_file: Optional[Path] = None) -> None:
    level = getattr(logging, level_name.upper(), logging.WARNING)
    handlers: list[logging.Handler]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers = [logging.FileHandler(log_file, encoding="utf-8")]
    else:
        handlers = [logging.StreamHandler(sys.stderr)]
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def settings_from_args(args: argparse.Namespace, base: SummarizationSettings) -> SummarizationSettings:
    return SummarizationSettings.from_values(
        type=args.type or base.type.value,
        format=args.format or base.format.value,
        length=args.length or base.length.value,
    )


async def run_summarize(config: PanelConfig, url: str, settings: SummarizationSettings, allow_download: bool) -> int:
    runtime = build_runtime(config, settings=settings, user_activation=allow_download)
    controller = runtime.controller
    try:
        runtime.worker.tabs.open(url)
        await controller.start()
        if controller.state is PanelState.READY:
            controller.dispatch(PanelEvent.CONFIRM)
            await controller.drain()

        if controller.state is not PanelState.COMPLETE:
            message = next((m.text for m in reversed(controller.messages) if m.kind == "error"), controller.state.value)
            print(f"Cannot summarize {url}: {message}", file=sys.stderr)
            return 1

        if controller.warning:
            print(controller.warning, file=sys.stderr)
        print(controller.summary)
        last = controller.messages[-1] if controller.messages else None
        return 1 if last is not None and last.kind == "error" else 0
    finally:
        await runtime.aclose()


async def run_panel(config: PanelConfig, url: str) -> int:  # pragma: no cover - interactive
    try:
        from .panel import SummaryPanel
    except ModuleNotFoundError as exc:
        if exc.name == "prompt_toolkit":
            print(
                "The interactive panel requires 'prompt_toolkit'. Install it with `python -m pip install .`.",
                file=sys.stderr,
            )
            return 2
        raise

    runtime = build_runtime(config)
    try:
        await runtime.worker.navigate(url)
        panel = SummaryPanel(runtime.controller, runtime.history)
        return await panel.run_async()
    finally:
        await runtime.aclose()


async def run_extract(url: str) -> int:
    session_storage = SessionStorage()
    extractor = PageTextExtractor()
    worker = BackgroundWorker(TabTracker(url), extractor, session_storage)
    gateway = ExtractionGateway(MessageChannel(worker.handle_message).send_message, session_storage)
    try:
        content = await gateway.request_extraction()
    except ExtractionError as exc:
        print(f"Extraction failed: {exc}", file=sys.stderr)
        return 1
    finally:
        await extractor.aclose()
    print(content.text)
    return 0


async def run_history(config: PanelConfig, limit: Optional[int], clear: bool) -> int:
    history = HistoryStore(DurableStorage(config.storage_path))
    if clear:
        await history.clear()
        print("History cleared.")
        return 0

    entries = await history.list()
    if limit:
        entries = entries[:limit]
    if not entries:
        print("No summaries yet.")
        return 0
    for entry in entries:
        marker = "ok " if entry.status is HistoryStatus.SUCCESS else "err"
        settings = entry.settings
        print(
            f"[{marker}] {entry.timestamp.isoformat(timespec='seconds')} {entry.url} "
            f"({settings.type.value}, {settings.format.value}, {settings.length.value})"
        )
        for line in entry.summary_text.strip().splitlines():
            print(f"    {line}")
    return 0


def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--type",
        choices=["key-points", "tldr", "tl;dr", "teaser", "headline"],
        help="Summary type (default from config, else key-points)",
    )
    parser.add_argument(
        "--format",
        choices=["markdown", "plain-text"],
        help="Summary format (default from config, else markdown)",
    )
    parser.add_argument(
        "--length",
        choices=["short", "medium", "long"],
        help="Summary length (default from config, else short)",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="smartshare",
        description="Summarize web pages for sharing, from an interactive panel or the command line.",
    )
    p.add_argument(
        "--config",
        type=Path,
        help="YAML configuration file (default: $SMARTSHARE_CONFIG or ~/.config/smartshare/config.yaml)",
    )
    p.add_argument(
        "--data-dir",
        type=Path,
        help="Directory for history and caches (default: $SMARTSHARE_DATA_DIR or ~/.smartshare)",
    )
    p.add_argument(
        "--log-level",
        default=os.getenv("SMARTSHARE_LOG_LEVEL", "WARNING"),
        help="Logging level (default: $SMARTSHARE_LOG_LEVEL or WARNING)",
    )
    p.add_argument("--model", help="OpenRouter model identifier (overrides the config file)")

    sub = p.add_subparsers(dest="cmd", required=True)

    p_panel = sub.add_parser("panel", help="Open the interactive summary panel for a page")
    p_panel.add_argument("url", help="Page to open in the active tab")

    p_summarize = sub.add_parser("summarize", help="Summarize a page and print the result")
    p_summarize.add_argument("url", help="Page to summarize")
    _add_settings_arguments(p_summarize)
    p_summarize.add_argument(
        "--no-download",
        action="store_true",
        help="Do not fetch model metadata when it is not cached yet",
    )

    p_extract = sub.add_parser("extract", help="Print the readable text extracted from a page")
    p_extract.add_argument("url", help="Page to extract")

    p_history = sub.add_parser("history", help="Show past summaries")
    p_history.add_argument("--limit", type=int, help="Show at most this many entries")
    p_history.add_argument("--clear", action="store_true", help="Delete the stored history")

    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_panel_config(args.config, args.data_dir)
    except ConfigError as exc:
        parser.error(str(exc))
        return 2
    if args.model:
        config.model = args.model

    log_file = config.log_path if args.cmd == "panel" else None
    configure_logging(args.log_level, log_file)

    if args.cmd == "panel":
        return asyncio.run(run_panel(config, args.url))

    if args.cmd == "summarize":
        try:
            settings = settings_from_args(args, config.settings)
        except ValueError as exc:
            parser.error(str(exc))
            return 2
        return asyncio.run(run_summarize(config, args.url, settings, allow_download=not args.no_download))

    if args.cmd == "extract":
        return asyncio.run(run_extract(args.url))

    if args.cmd == "history":
        return asyncio.run(run_history(config, args.limit, args.clear))

    parser.error("Unknown command")
    return 2


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
