"""Throughput benchmark: checks/sec from concurrent threads at different pool sizes."""

import sys
import threading
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "tests"))

from bloomd_client import BloomdClient, ClientConfig
from conftest import find_free_port, start_server, stop_server


def main():
    port = find_free_port()
    proc = start_server(port)
    try:
        with BloomdClient(port=port, config=ClientConfig(initial_connections=1, timeout=30.0)) as seed:
            seed.create("bench", capacity=1_000_000, probability=0.001)
            batch = 500
            for i in range(0, 10_000, batch):
                seed.bulk("bench", *(f"pre_{j}" for j in range(i, i + batch)))

        n_threads = 16
        n_checks = 500
        for max_connections in [1, 2, 4, 8, 16]:
            config = ClientConfig(initial_connections=max_connections, max_connections=max_connections, timeout=30.0)
            with BloomdClient(port=port, config=config) as client:

                def worker(thread_id: int):
                    for i in range(n_checks):
                        client.check("bench", f"pre_{(thread_id * n_checks + i) % 10_000}")

                threads = [threading.Thread(target=worker, args=(tid,)) for tid in range(n_threads)]
                start = time.perf_counter()
                for t in threads:
                    t.start()
                for t in threads:
                    t.join()
                elapsed = time.perf_counter() - start
            total = n_threads * n_checks
            print(f"Pool of {max_connections:>2} connections -> {total / elapsed:>8.0f} checks/sec ({total} checks in {elapsed:.2f}s)")
    finally:
        stop_server(proc)
    print("Done.")


if __name__ == "__main__":
    main()
