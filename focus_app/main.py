"""Application entry point for the focus timer (headless edition)."""
from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from focus_app.focus import __version__, stats
from focus_app.focus.controllers import AppController, ConfigManager
from focus_app.focus.events import ModeChanged, PersistenceFailed, SessionCompleted, TimerTicked
from focus_app.focus.storage import Store

LOG_DIR = Path.home() / ".focus_timer" / "logs"
LOG_FILE = LOG_DIR / "app.log"


def configure_logging(level: str = "INFO") -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(LOG_FILE, maxBytes=1024 * 1024, backupCount=3)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[handler, logging.StreamHandler()],
    )
    logging.info("Focus Timer v%s starting", __version__)


def build_controller(config_manager: ConfigManager, one_shot: bool = False) -> AppController:
    config = config_manager.config
    if one_shot:
        # A delayed auto-start would be cancelled by the shutdown that follows.
        config = replace(config, auto_start_delay_seconds=0.0)
    store = Store(config.resolved_data_path)
    return AppController(store, config)


def _print_status(controller: AppController) -> None:
    timer = controller.timer
    summary = controller.stats_summary()
    task = controller.tasks.find(timer.active_task_id)
    print(f"Mode: {timer.mode.value} (station {timer.cycle_station})")
    print(f"Remaining: {stats.format_clock(timer.remaining_time)} of {stats.format_clock(timer.total_time)}")
    print(f"Running: {'yes' if timer.is_running else 'no'}")
    print(f"Task: {task.name if task else '-'}")
    print(f"Today: {stats.format_focus_time(summary.today_seconds)} in {summary.today_sessions} sessions")
    print(f"Streak: {summary.streak} days" if summary.streak else "Streak: --")


def _run(controller: AppController, task: Optional[str]) -> None:
    # Ticks arrive on the scheduler thread; the main thread only waits.
    stop = threading.Event()
    bus = controller.bus
    bus.subscribe(TimerTicked, lambda e: print(f"\r{e.mode.value:<10} {stats.format_clock(e.remaining)}", end="", flush=True))
    bus.subscribe(ModeChanged, lambda e: print(f"\n-> {e.mode.value} (station {e.cycle_station})"))
    bus.subscribe(SessionCompleted, lambda e: print(f"\nLogged {e.session.duration // 60} min for {e.session.task_name}"))
    bus.subscribe(PersistenceFailed, lambda e: print(f"\nWarning: data not saved ({e.error})", file=sys.stderr))
    if task:
        match = next((t for t in controller.list_tasks() if task in (t.id, t.name)), None)
        if match is None:
            match = controller.add_task(task)
        controller.bind_task_and_start(match.id)
    else:
        controller.start()
    try:
        while not stop.wait(0.5):
            pass
    except KeyboardInterrupt:
        controller.pause()
        print()


def _parse_args(argv: Optional[List[str]]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="focus-timer", description="Focus timer with task tracking")
    parser.add_argument("--config", type=Path, default=None, help="path to config.toml")
    sub = parser.add_subparsers(dest="command")
    run = sub.add_parser("run", help="run the timer in the foreground")
    run.add_argument("--task", help="task id or name to attribute work to")
    sub.add_parser("status", help="show timer state and today's totals")
    export = sub.add_parser("export", help="export tasks, sessions and settings as JSON")
    export.add_argument("path", type=Path)
    imp = sub.add_parser("import", help="import a JSON export")
    imp.add_argument("path", type=Path)
    imp.add_argument("--mode", choices=["replace", "merge"], default="merge")
    report = sub.add_parser("report", help="write the session history to a spreadsheet")
    report.add_argument("path", type=Path, nargs="?")
    sub.add_parser("backup", help="copy the data file")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = _parse_args(argv)
    config_manager = ConfigManager(args.config) if args.config else ConfigManager()
    configure_logging(config_manager.config.log_level)
    command = args.command or "status"
    controller = build_controller(config_manager, one_shot=command != "run")
    controller.startup()
    try:
        if command == "run":
            _run(controller, args.task)
        elif command == "status":
            _print_status(controller)
        elif command == "export":
            print(controller.export_to_file(args.path))
        elif command == "import":
            result = controller.import_from_file(args.path, args.mode)
            print(f"Imported {result.tasks_added} tasks and {result.sessions_added} sessions ({result.mode})")
        elif command == "report":
            print(controller.export_report(args.path))
        elif command == "backup":
            print(controller.backup())
    finally:
        controller.shutdown()


if __name__ == "__main__":
    main()
