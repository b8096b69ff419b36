#!/usr/bin/env python3
"""
Command sender for the cooking session server.

Usage:
  python3 cook_cmd.py recipes                 # List recipes (shortest first)
  python3 cook_cmd.py recipes --desc -d Easy  # Longest Easy recipes first
  python3 cook_cmd.py status                  # Show the active session
  python3 cook_cmd.py start RECIPE_ID         # Start cooking a recipe
  python3 cook_cmd.py pause RECIPE_ID
  python3 cook_cmd.py resume RECIPE_ID
  python3 cook_cmd.py toggle RECIPE_ID        # Pause/resume
  python3 cook_cmd.py next RECIPE_ID          # Finish current step
  python3 cook_cmd.py end RECIPE_ID           # Stop the session now
  python3 cook_cmd.py watch                   # Live countdown, Ctrl-C to quit
"""

import argparse
import json
import os
import sys
import time
import urllib.error
import urllib.request

DEFAULT_HOST = os.environ.get("COOK_HOST", "127.0.0.1")
DEFAULT_PORT = int(os.environ.get("COOK_PORT", "8000"))

SESSION_COMMANDS = {
    "start": "start",
    "pause": "pause",
    "resume": "resume",
    "toggle": "toggle",
    "next": "advance",
    "end": "end",
}


def format_seconds(s):
    """Render seconds as MM:SS."""
    s = max(0, int(s))
    return f"{s // 60:02d}:{s % 60:02d}"


def request(base, path, method="GET", body=None):
    data = json.dumps(body).encode() if body is not None else None
    req = urllib.request.Request(base + path, data=data, method=method)
    if data is not None:
        req.add_header("Content-Type", "application/json")
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            return json.loads(resp.read())
    except urllib.error.HTTPError as e:
        # 4xx bodies still carry the engine's result
        return json.loads(e.read() or b"{}")


def describe_session(msg):
    sess = msg.get("session")
    if not sess:
        return "No active session"
    state = "running" if sess["is_running"] else "paused"
    return (
        f"{sess['recipe_id']}  step {sess['current_step_index'] + 1}/{sess['step_count']}  "
        f"{format_seconds(sess['step_remaining_seconds'])} left in step  "
        f"{format_seconds(sess['overall_remaining_seconds'])} overall  [{state}]"
    )


def print_recipes(recipes):
    for r in recipes:
        minutes = sum(s["duration_minutes"] for s in r["steps"])
        star = "*" if r.get("is_favorite") else " "
        print(f"{star} {r['id']:<24} {r['title']:<30} {r['difficulty']:<7} {len(r['steps'])} steps  {minutes} min")


def watch(base, interval=1.0):
    last = None
    while True:
        line = describe_session(request(base, "/api/session"))
        if line != last:
            print(line)
            last = line
        time.sleep(interval)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Control a cooking session")
    parser.add_argument("--host", default=DEFAULT_HOST, help=f"Server host (default: {DEFAULT_HOST})")
    parser.add_argument("--port", "-p", type=int, default=DEFAULT_PORT, help=f"Server port (default: {DEFAULT_PORT})")
    sub = parser.add_subparsers(dest="command", required=True)

    rec = sub.add_parser("recipes", help="List recipes")
    rec.add_argument("--difficulty", "-d", choices=["Easy", "Medium", "Hard"])
    rec.add_argument("--desc", action="store_true", help="Longest first")
    rec.add_argument("--favorites", "-f", action="store_true", help="Favourites only")

    sub.add_parser("status", help="Show the active session")
    sub.add_parser("watch", help="Print the countdown as it changes")
    for name in SESSION_COMMANDS:
        p = sub.add_parser(name, help=f"{name} the session for a recipe")
        p.add_argument("recipe_id")

    args = parser.parse_args(argv)
    base = f"http://{args.host}:{args.port}"

    try:
        if args.command == "recipes":
            query = f"?sort={'desc' if args.desc else 'asc'}"
            if args.difficulty:
                query += f"&difficulty={args.difficulty}"
            if args.favorites:
                query += "&favorites=true"
            print_recipes(request(base, "/api/recipes" + query))
        elif args.command == "status":
            print(describe_session(request(base, "/api/session")))
        elif args.command == "watch":
            try:
                watch(base)
            except KeyboardInterrupt:
                pass
        else:
            action = SESSION_COMMANDS[args.command]
            result = request(base, f"/api/session/{args.recipe_id}/{action}", method="POST")
            if not result.get("ok"):
                print(f"Refused: {result.get('error')} {result.get('message', '')}".rstrip(), file=sys.stderr)
                return 1
            if result.get("completed"):
                print("Recipe completed")
            elif result.get("ended"):
                print("Session ended")
            else:
                print(describe_session(result))
    except (urllib.error.URLError, ConnectionError) as e:
        print(f"Cannot reach server at {base}: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
