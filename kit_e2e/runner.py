#!/usr/bin/env python3
"""
Run the e2e suite with the harness's timeout, worker and retry policy.

Failed tests are re-run on their own (``--lf``) until they pass or the retry
budget is spent. Each attempt exports KIT_E2E_ATTEMPT so the plugin can apply
the trace policy.
"""

import argparse
import logging
import os
import subprocess
import sys
from typing import Dict, List, NamedTuple, Optional, Sequence

from kit_e2e.config import HarnessConfig
from kit_e2e.errors import ConfigurationError

logger = logging.getLogger(__name__)


class RunnerArgs(NamedTuple):
    paths: List[str]
    retries: Optional[int]
    workers: Optional[int]
    verbose: bool
    pytest_args: List[str]


def parse_args(argv: Optional[Sequence[str]] = None) -> RunnerArgs:
    parser = argparse.ArgumentParser(description="Run the kit e2e test suite")
    parser.add_argument("paths", nargs="*", default=["tests/e2e"], help="Test paths")
    parser.add_argument(
        "--retries", type=int, help="Re-run failed tests up to N times"
    )
    parser.add_argument(
        "--workers", "-n", type=int, help="Parallel workers (pytest-xdist)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parsed, extra = parser.parse_known_args(argv)

    # Convert to typed structure
    return RunnerArgs(
        paths=list(parsed.paths),
        retries=parsed.retries,
        workers=parsed.workers,
        verbose=parsed.verbose,
        pytest_args=list(extra),
    )


def build_command(
    config: HarnessConfig, args: RunnerArgs, rerun_failed: bool = False
) -> List[str]:
    """pytest command line for one attempt."""
    cmd = [sys.executable, "-m", "pytest", *args.paths]
    cmd.append(f"--timeout={config.timeout_ms // 1000}")

    workers = args.workers if args.workers is not None else config.workers
    if workers:
        cmd.extend(["-n", str(workers)])
    if args.verbose:
        cmd.append("-v")
    if rerun_failed:
        cmd.append("--last-failed")

    return cmd + args.pytest_args


def attempt_env(attempt: int, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    env = dict(os.environ if base is None else base)
    env["KIT_E2E_ATTEMPT"] = str(attempt)
    return env


def run(config: HarnessConfig, args: RunnerArgs) -> int:
    """Run the suite, retrying failures; returns the last exit code."""
    retries = args.retries if args.retries is not None else config.retries
    returncode = 0

    for attempt in range(retries + 1):
        cmd = build_command(config, args, rerun_failed=attempt > 0)
        label = "Running e2e suite" if attempt == 0 else f"Retry {attempt}/{retries}"
        print(f"\n{'='*60}")
        print(f"{label}: {config.project_name(True)} / {config.project_name(False)}")
        print(f"Command: {' '.join(cmd)}")
        print(f"{'='*60}")

        returncode = subprocess.run(cmd, env=attempt_env(attempt)).returncode
        if returncode == 0:
            print(f"\n✅ {label} passed")
            return 0
        # 5: no tests collected; retrying cannot help
        if returncode == 5:
            break
        print(f"\n❌ {label} failed with return code {returncode}")

    return returncode


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    args = parse_args(argv)
    try:
        config = HarnessConfig.from_environment()
    except ConfigurationError as e:
        logger.error(e.message)
        return 2
    return run(config, args)


if __name__ == "__main__":
    sys.exit(main())
