#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def main(argv: list[str] | None = None) -> int:
    repo = _repo_root()
    sys.path.insert(0, str(repo / "runtime" / "core"))

    from config.settings import load_runtime_config
    from errors import ConfigurationError, SchemaValidationError

    args = sys.argv[1:] if argv is None else argv
    path = Path(args[0]) if args else repo / "runtime" / "core" / "config" / "runtime.yaml"

    try:
        runtime = load_runtime_config(path)
    except SchemaValidationError as e:
        print("config_validation=FAIL")
        for v in e.violations:
            print(f"violation path={v.path} message={v.message}")
        return 1
    except ConfigurationError as e:
        print("config_validation=FAIL")
        print(f"reason={e}")
        return 1

    print(f"storage_driver={runtime.storage.driver} connectivity_source={runtime.connectivity.source}")
    for gate in runtime.gates:
        print(
            f"gate={gate.name} period={gate.period.describe()} connectivity={gate.connectivity.value} "
            f"max_retry_interval_seconds={gate.max_retry_interval.total_seconds():g}"
        )
    print("config_validation=PASS")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
