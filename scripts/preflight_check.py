#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Dummy env so settings load without a real deployment
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import credverify.main
    print("Import credverify.main: OK")

    from credverify.core.orchestrator import build_orchestrator
    orch = build_orchestrator()
    print(f"Orchestrator wiring: OK (interval={orch.poll_interval_sec}s, maxAttempts={orch.max_attempts})")
    orch.shutdown()

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
