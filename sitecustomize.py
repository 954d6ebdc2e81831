"""Start coverage in interpreters spawned by the test suite (e.g. the setup script)."""

import os

if os.getenv("COVERAGE_PROCESS_START"):
    try:
        import coverage
    except ImportError:  # pragma: no cover - coverage is an optional test extra
        pass
    else:
        coverage.process_startup()
