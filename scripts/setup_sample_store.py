"""Utility that launches a sample IoTDB Docker container for iotdbbridge."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from iotdbbridge.config import CONFIG_FILE, BridgeConfig, ConnectionProfileConfig, build_registry, load_config, save_config
from iotdbbridge.connections import SessionAcquisitionError
from iotdbbridge.models import RequestMethod, StatementRequest
from iotdbbridge.query import QueryExecutionError, StatementExecutor

DEFAULT_CONTAINER = "iotdbbridge-sample-store"
DEFAULT_PORT = 6668
DEFAULT_USER = "root"
DEFAULT_PASSWORD = "root"
DOCKER_IMAGE = "apache/iotdb:1.3.2-standalone"

SEED_STATEMENTS = (
    "CREATE DATABASE root.demo",
    "INSERT INTO root.demo.sensor1(timestamp, temperature, humidity) VALUES (1700000000000, 21.5, 40.1)",
    "INSERT INTO root.demo.sensor1(timestamp, temperature, humidity) VALUES (1700000060000, 21.7, 39.8)",
    "INSERT INTO root.demo.sensor1(timestamp, temperature, humidity) VALUES (1700000120000, 22.0, 39.5)",
    "INSERT INTO root.demo.sensor2(timestamp, status) VALUES (1700000000000, 'online')",
)


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(["docker", "run", "-d", "--name", name, "-p", f"{port}:6667", DOCKER_IMAGE])


def sample_request(port: int, user: str, password: str, method: RequestMethod) -> StatementRequest:
    return StatementRequest(
        uri=f"iotdb://localhost:{port}",
        account=user,
        password=password,
        method=method,
        schema="root",
        table="demo",
    )


def seed_data(port: int, user: str, password: str, retries: int = 30, delay: float = 1.0) -> None:
    request = sample_request(port, user, password, RequestMethod.POST)
    with build_registry(BridgeConfig()) as registry:
        for attempt in range(retries):
            try:
                registry.get_session(request)
                break
            except SessionAcquisitionError:
                time.sleep(delay)
        else:
            print("Warning: store did not accept sessions; skipping seed data.")
            return
        executor = StatementExecutor(registry)
        for statement in SEED_STATEMENTS:
            try:
                executor.execute_update(request, statement)
            except QueryExecutionError as exc:
                print(f"Skipping seed statement: {exc}")


def update_config(port: int, user: str, password: str) -> None:
    try:
        config = load_config()
    except Exception:
        config = BridgeConfig()
    profiles = list(config.profiles)
    target = next((p for p in profiles if p.name == "Docker Sample"), None)
    if target is None:
        profiles.append(
            ConnectionProfileConfig(
                name="Docker Sample",
                uri=f"iotdb://localhost:{port}",
                account=user,
                password=password,
            )
        )
        config = config.model_copy(update={"profiles": profiles})
        save_config(config)
        print(f"Added 'Docker Sample' profile to {CONFIG_FILE}.")
    else:
        print("Profile 'Docker Sample' already present in config; leaving as-is.")


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose IoTDB on")
    parser.add_argument("--user", default=DEFAULT_USER, help="IoTDB account")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="IoTDB password")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv or sys.argv[1:])
    try:
        start_container(args.container, args.port)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    seed_data(args.port, args.user, args.password)
    update_config(args.port, args.user, args.password)
    print(
        "Sample store is ready. Try: python -m iotdbbridge --profile 'Docker Sample' "
        "--schema root --table demo.sensor1 'SELECT * FROM root.demo.sensor1'"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
