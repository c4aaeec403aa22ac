from __future__ import annotations

import argparse
import json
import sys
import time


def _valid_port(value: str) -> int:
    """Validate port is an integer in range 1-65535."""
    port = int(value)
    if port < 1 or port > 65535:
        raise argparse.ArgumentTypeError(f"port must be 1-65535, got {port}")
    return port


def main() -> None:
    from portalbot.config.loader import get_server_config

    server_cfg = get_server_config()
    default_host = server_cfg.get("host", "127.0.0.1")
    default_port = int(server_cfg.get("port", 5050))

    parser = argparse.ArgumentParser(
        prog="portalbot",
        description="PortalBot -- job portal chat assistant",
    )
    subparsers = parser.add_subparsers(dest="command")

    start_parser = subparsers.add_parser("start", help="Start the chat server")
    start_parser.add_argument(
        "--port", type=_valid_port, default=default_port, help=f"Port to run on (default: {default_port})"
    )
    start_parser.add_argument(
        "--host", default=default_host, help=f"Host to bind to (default: {default_host})"
    )
    start_parser.add_argument(
        "--state-file", default="", help="Where conversations are persisted (default: ~/.portalbot/conversations.json)"
    )

    stop_parser = subparsers.add_parser("stop", help="Stop the running chat server")
    stop_parser.add_argument(
        "--port", type=_valid_port, default=default_port, help=f"Port the server is running on (default: {default_port})"
    )

    ask_parser = subparsers.add_parser("ask", help="Resolve a single question offline")
    ask_parser.add_argument("message", help="The question to ask")
    ask_parser.add_argument("--role", default="", help="Role to answer as (job_seeker, employer, trainer, trainee)")
    ask_parser.add_argument("--username", default="", help="Name to greet the user by")
    ask_parser.add_argument("--json", dest="output_json", action="store_true", help="Output raw JSON")

    sessions_parser = subparsers.add_parser("sessions", help="List persisted conversations")
    sessions_parser.add_argument("--state-file", default="", help="Conversations file to read")
    sessions_parser.add_argument("--json", dest="output_json", action="store_true", help="Output raw JSON")

    args = parser.parse_args()

    if args.command == "start":
        if args.host not in ("127.0.0.1", "localhost", "::1"):
            print("Warning: binding to non-loopback address exposes the chat server to the network", file=sys.stderr)
        _start_server(host=args.host, port=args.port, state_file=args.state_file)
    elif args.command == "stop":
        _stop_server(port=args.port)
    elif args.command == "ask":
        _ask(args)
    elif args.command == "sessions":
        _list_sessions(args)
    else:
        parser.print_help()
        sys.exit(1)


def _start_server(host: str, port: int, state_file: str = "") -> None:
    import os
    import uvicorn

    from portalbot import __version__

    print()
    print(f"  PortalBot v{__version__}")
    print(f"  Chat socket: ws://{host}:{port}/ws")
    print(f"  API docs:    http://{host}:{port}/docs")
    print()

    # api.py builds its app at import time, so the state file travels via the environment
    if state_file:
        os.environ["PORTALBOT_STATE_FILE"] = state_file

    uvicorn.run("portalbot.api:app", host=host, port=port, log_level="warning")


def _stop_server(port: int) -> None:
    """Stop a running PortalBot server by finding and terminating its process."""
    import psutil

    target_port = port
    for proc in psutil.process_iter(["pid", "name"]):
        try:
            for conn in proc.net_connections(kind="tcp"):
                if conn.laddr.port == target_port and conn.status == "LISTEN":
                    proc.terminate()
                    try:
                        proc.wait(timeout=5)
                        print(f"  PortalBot (PID {proc.pid}) stopped.")
                    except psutil.TimeoutExpired:
                        proc.kill()
                        print(f"  PortalBot (PID {proc.pid}) killed.")
                    return
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    print(f"  No PortalBot server found on port {target_port}.")
    sys.exit(1)


def _ask(args: argparse.Namespace) -> None:
    from portalbot.intelligence.resolver import QueryResolver
    from portalbot.intelligence.topics import SessionContext

    session = SessionContext(username=args.username or None, user_role=args.role or None)
    result = QueryResolver().resolve_text(args.message, session)

    if args.output_json:
        print(json.dumps(result, indent=2))
        return

    print(result["response"])
    topic = f" / {result['topic']}" if result.get("topic") else ""
    print(f"\n  [{result['source']}{topic}]")


def _list_sessions(args: argparse.Namespace) -> None:
    from pathlib import Path

    from portalbot.config.loader import resolve_state_file
    from portalbot.sessions.persistence import PersistenceManager
    from portalbot.sessions.store import SessionStore

    path = Path(args.state_file).expanduser() if args.state_file else resolve_state_file()
    store = SessionStore()
    PersistenceManager(store, path).load()

    rows = []
    for sid in store.ids():
        session = store.get(sid)
        rows.append({
            "session_id": sid,
            "messages": len(session.messages),
            "last_activity": session.last_activity,
        })
    rows.sort(key=lambda r: r["last_activity"] or 0, reverse=True)

    if args.output_json:
        print(json.dumps(rows, indent=2))
        return

    if not rows:
        print(f"No conversations found in {path}.")
        return

    print(f"  {len(rows)} conversation(s) in {path}\n")
    for row in rows:
        ts = row["last_activity"]
        when = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(ts / 1000)) if ts else "never"
        print(f"  {row['session_id'][:36]:<36}  {row['messages']:>3} msg  {when}")


if __name__ == "__main__":
    main()
