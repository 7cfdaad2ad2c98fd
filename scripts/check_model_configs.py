#!/usr/bin/env python3
"""
Model Descriptor Checker

Validates model descriptors and prints a concise report:
- JSON parses and matches the descriptor schema
- search field ``where`` placeholders match the number of ``values``
- option widgets point at existing models and KV configs

Reads descriptors from MODEL_CONFIG_DIR unless --dir is given.

Usage:
  python scripts/check_model_configs.py [--dir DIR] [--json] [NAME ...]

Exit code is 1 when any descriptor is invalid.
"""
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from mcadmin.db.config import ModelConfig, clear_config_cache, get_file_config, list_config_names
from mcadmin.db.errors import ConfigModelError
from mcadmin.db.sql import placeholder_count
from mcadmin.utils.settings import get_settings

logger = logging.getLogger("mcadmin.scripts.check_model_configs")


@dataclass
class CheckResult:
    name: str
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate model descriptor files")
    parser.add_argument("names", nargs="*", help="Descriptor names to check (default: all)")
    parser.add_argument("--dir", dest="config_dir", type=Path, default=None,
                        help="Descriptor directory (default: MODEL_CONFIG_DIR)")
    parser.add_argument("--json", dest="as_json", action="store_true", help="Print the report as JSON")
    return parser.parse_args(argv)


def _option_problems(config: ModelConfig, config_dir: Path) -> List[str]:
    problems = []
    for f in [*config.search_fields, *config.edit_fields]:
        if f.options is None or f.options.items or not f.options.model:
            continue
        try:
            target = get_file_config(f.options.model, config_dir)
        except ConfigModelError as exc:
            problems.append(f"field '{f.name}' options: {exc}")
            continue
        if f.options.kv not in target.kvs:
            problems.append(f"field '{f.name}' options: KV config [{f.options.kv}] does not exist in model {target.name}")
    return problems


def check_config(name: str, config_dir: Path) -> CheckResult:
    result = CheckResult(name=name)
    try:
        config = get_file_config(name, config_dir)
    except ConfigModelError as exc:
        result.problems.append(str(exc))
        for err in getattr(exc, "errors", []):
            loc = ".".join(str(p) for p in err.get("loc", ()))
            result.problems.append(f"{loc}: {err.get('msg')}")
        return result

    for f in config.search_fields:
        if f.where and placeholder_count(f.where) != len(f.values):
            result.problems.append(
                f"search field '{f.name}': where has {placeholder_count(f.where)} placeholder(s) "
                f"but {len(f.values)} value(s)"
            )
    result.problems.extend(_option_problems(config, config_dir))
    return result


def check_all(config_dir: Path, names: Optional[List[str]] = None) -> List[CheckResult]:
    clear_config_cache()
    return [check_config(n, config_dir) for n in (names or list_config_names(config_dir))]


def render(results: List[CheckResult], as_json: bool) -> str:
    if as_json:
        payload: Dict[str, object] = {
            "ok": all(r.ok for r in results),
            "models": {r.name: r.problems for r in results},
        }
        return json.dumps(payload, indent=2)
    lines = []
    for r in results:
        lines.append(f"{r.name}: {'ok' if r.ok else 'INVALID'}")
        lines.extend(f"  - {p}" for p in r.problems)
    invalid = sum(1 for r in results if not r.ok)
    lines.append(f"{len(results)} checked, {invalid} invalid")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)
    config_dir = args.config_dir or get_settings().model_config_dir
    results = check_all(config_dir, args.names)
    print(render(results, args.as_json))
    return 0 if all(r.ok for r in results) else 1


if __name__ == "__main__":  # pragma: no cover - manual execution path
    sys.exit(main())
