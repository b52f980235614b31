"""
模块职责：统一日志配置与结构化输出（控制台 + 可选按天滚动文件）。
- configure_logging(): 读取 LOG_* 环境变量设置等级与文件输出，uvicorn 日志合流到同一套 handler。
- emit(event, **kwargs): 业务事件打点，一行 JSON，便于检索。
- emit_error(event, **kwargs): 同上，level=ERROR。

约定：口令、令牌永远不进日志。
"""
import json
import logging
import os
import pathlib
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler

_configured = False
_app_logger = logging.getLogger("rolegate")


def log_settings() -> dict:
    return {
        "log_level": os.getenv("LOG_LEVEL", "INFO").upper(),
        "to_file": os.getenv("LOG_TO_FILE", "true").lower() == "true",
        "dir": os.getenv("LOG_DIR", "logs"),
        "file": os.getenv("LOG_FILE", "rolegate.log"),
        "when": os.getenv("LOG_ROTATE_WHEN", "midnight"),
        "backup": int(os.getenv("LOG_BACKUP_COUNT", "7")),
    }


def configure_logging() -> dict:
    global _configured
    cfg = log_settings()
    if _configured:
        return cfg

    level = getattr(logging, cfg["log_level"], logging.INFO)
    root = logging.getLogger()
    for h in list(root.handlers):
        root.removeHandler(h)

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(name)s | %(message)s"))
    root.addHandler(console)

    if cfg["to_file"]:
        pathlib.Path(cfg["dir"]).mkdir(parents=True, exist_ok=True)
        fileh = TimedRotatingFileHandler(
            os.path.join(cfg["dir"], cfg["file"]),
            when=cfg["when"], backupCount=cfg["backup"], encoding="utf-8",
        )
        fileh.setLevel(level)
        # 文件里只写 message（纯 JSON）
        fileh.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(fileh)

    root.setLevel(level)

    for ln in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        lg = logging.getLogger(ln)
        lg.handlers = []
        lg.propagate = True

    _configured = True
    return cfg


def _now_iso():
    return datetime.now().astimezone().isoformat(timespec="milliseconds")


def _record(event: str, level: str, fields: dict) -> str:
    rec = {"ts": _now_iso(), "level": level, "event": event, **fields}
    try:
        return json.dumps(rec, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(rec)


def emit(event: str, level: str = "INFO", **kwargs):
    """
    结构化日志，默认 INFO；level 可传 WARNING 等。
    用法：emit("table_probe_missing", level="WARNING", table="finance")
    """
    _app_logger.log(getattr(logging, level.upper(), logging.INFO), _record(event, level.upper(), kwargs))


def emit_error(event: str, **kwargs):
    """
    错误日志（level=ERROR）。
    用法：emit_error("migrate_table_failed", table="admin", error=str(e))
    """
    _app_logger.error(_record(event, "ERROR", kwargs))
