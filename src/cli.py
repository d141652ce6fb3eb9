# src/cli.py
import argparse
import logging
import sys

import yaml

from src import config
from src.repositories.csv import CsvUserRecordRepository
from src.services.container_service import ContainerService
from src.services.runtime_driver import DockerComposeRuntime
from src.services.storage_service import StorageService
from src.services.exceptions import *
from src.utils.compose_generator import service_names

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_VALIDATION = 2
EXIT_NOT_FOUND = 3
EXIT_RUNTIME = 4
EXIT_INTERRUPTED = 130

# --------------------------------------------------------------------------
## 의존성 생성 및 오류 처리 유틸리티
# --------------------------------------------------------------------------

def build_service():
    record_repo = CsvUserRecordRepository(config.REGISTRY_PATH)
    storage_service = StorageService(config.STORAGE_DIR)
    runtime = DockerComposeRuntime(config.COMPOSE_FILE)
    return ContainerService(record_repo, storage_service, runtime, config.COMPOSE_FILE)

def handle_exception(e):
    error_map = {
        InvalidIdentifierError: EXIT_VALIDATION,
        ValidationError: EXIT_VALIDATION,
        ServiceNotFoundError: EXIT_NOT_FOUND,
        NotFoundError: EXIT_NOT_FOUND,
        RuntimeCommandError: EXIT_RUNTIME,
        RegistryLockError: EXIT_RUNTIME,
    }
    status = error_map.get(type(e), EXIT_RUNTIME)
    print(f"Error: {e}", file=sys.stderr)
    return status

class _Parser(argparse.ArgumentParser):
    """사용법 오류(알 수 없는 명령, 사용자 누락)를 검증 오류와 다른 종료 코드로 보고합니다."""
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_USAGE, f"Error: {message}\nUse '{self.prog} help' for usage information.\n")

# --------------------------------------------------------------------------
## 핸들러 함수
# --------------------------------------------------------------------------

def add_handler(service, args):
    record = service.add(
        args.user, args.ssh_port, args.web_port, args.password,
        args.cpus, args.memory, args.storage,
    )
    print(f"User '{record.username}' added and container '{record.service_name}' started.")
    if not args.password:
        print(f"Generated password: {record.password}")
    if record.ssh_port:
        print(f"  ssh -p {record.ssh_port} {record.username}@{config.SSH_HOST}")
    return EXIT_OK

def remove_handler(service, args):
    if not args.yes:
        try:
            answer = input(f"Are you sure? This will delete all data for {args.user} (y/N): ")
        except EOFError:
            # 표준 입력이 닫혀 있으면 거절로 봅니다.
            print()
            answer = ""
        if answer.strip().lower() not in ("y", "yes"):
            print("Operation cancelled")
            return EXIT_OK
    report = service.remove(args.user)
    for step in report.steps:
        print(f"  [{'ok' if step.ok else 'FAILED'}] {step.name}" + (f": {step.detail}" if step.detail else ""))
    print(f"User '{args.user}' removed. {report.summary()}")
    return EXIT_OK

def _lifecycle_handler(action, message):
    def handler(service, args):
        print(f"{message} container for user: {args.user}")
        getattr(service, action)(args.user)
        return EXIT_OK
    return handler

def resources_handler(service, args):
    info = service.resources(args.user)
    live = info["live"]
    print(f"Resources for {args.user}:")
    print(f"  {'':8} {'configured':<28} live")
    for key in ("cpus", "memory"):
        live_value = live[key] if live is not None else "unavailable (container not running)"
        print(f"  {key:8} {info['configured'][key]:<28} {live_value}")
    print(f"  {'storage':8} {info['configured']['storage']}")
    return EXIT_OK

def logs_handler(service, args):
    print(f"Showing logs for user: {args.user}")
    service.logs(args.user)
    return EXIT_OK

def shell_handler(service, args):
    print(f"Opening shell in container for user: {args.user}")
    service.shell(args.user)
    return EXIT_OK

def ssh_info_handler(service, args):
    info = service.ssh_info(args.user)
    if info is None:
        print(f"Container for user {args.user} is not running or doesn't publish an SSH port")
        return EXIT_OK
    print(f"SSH Connection Info for {args.user}:")
    print(f"  Host: {info['host']}")
    print(f"  Port: {info['port']}")
    print(f"  Username: {info['username']}")
    print(f"  Command: {info['command']}")
    print("")
    print(f"Web Service Port: {info['web_port'] or '-'}")
    return EXIT_OK

def config_handler(service, args):
    info = service.service_config(args.user)
    print("Registry row:")
    print("  " + ",".join(info["record"].to_row()))
    print("Compose service:")
    print(yaml.safe_dump({info["record"].service_name: info["service"]}, default_flow_style=False, sort_keys=False))
    return EXIT_OK

def doctor_handler(service, args):
    report = service.doctor(args.user)
    print(f"Registry: {report['registry']}")
    for lineno, line in enumerate(report["raw_lines"], start=1):
        print(f"  {lineno:4}: {line!r}")
    print(f"Users: {', '.join(report['users']) or '-'}")
    print(f"Compiled services: {', '.join(report['services']) or '-'}")
    if args.user is not None:
        print(f"Service '{report['service']}': {'found' if report['found'] else 'NOT FOUND'}")
    for hint in report["hints"]:
        print(f"  hint: {hint}")
    return EXIT_OK

def list_handler(service, args):
    print("User Containers:")
    print("==================")
    print(f"{'USER':20} {'SSH':>6} {'WEB':>6} {'CPUS':>6} {'MEMORY':>8} STORAGE")
    for record in service.list_users():
        print(
            f"{record.username:20} {record.ssh_port or '-':>6} {record.web_port or '-':>6} "
            f"{str(record.cpus) if record.cpus is not None else '-':>6} "
            f"{record.memory.text if record.memory is not None else '-':>8} {record.storage or '-'}"
        )
    print("")
    print(service.list_containers(), end="")
    return EXIT_OK

def status_handler(service, args):
    print("Container Status Overview:")
    print("==========================")
    print(service.status(), end="")
    return EXIT_OK

def generate_handler(service, args):
    document = service.generate()
    print(f"Wrote {service.compose_file}")
    for name in service_names(document):
        print(f"  {name}")
    return EXIT_OK

# --------------------------------------------------------------------------
## 명령행 파서
# --------------------------------------------------------------------------

def build_parser():
    parser = _Parser(prog="sshbox", description="Per-user SSH sandbox container management")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    for name in ("add", "create"):
        p = sub.add_parser(name, help="Add or update a user and start their container")
        p.add_argument("user")
        p.add_argument("ssh_port", nargs="?", default="")
        p.add_argument("web_port", nargs="?", default="")
        p.add_argument("password", nargs="?", default="")
        p.add_argument("cpus", nargs="?", default="")
        p.add_argument("memory", nargs="?", default="")
        p.add_argument("storage", nargs="?", default="")
        p.set_defaults(handler=add_handler)

    p = sub.add_parser("remove", help="Remove a user's container, data and registry row")
    p.add_argument("user")
    p.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    p.set_defaults(handler=remove_handler)

    user_commands = [
        ("start", "Start a user's container", _lifecycle_handler("start", "Starting")),
        ("stop", "Stop a user's container", _lifecycle_handler("stop", "Stopping")),
        ("restart", "Restart a user's container", _lifecycle_handler("restart", "Restarting")),
        ("recreate", "Recreate a user's container (applies limit changes)", _lifecycle_handler("recreate", "Recreating")),
        ("resources", "Show configured and live CPU/memory limits", resources_handler),
        ("logs", "Follow a user's container logs", logs_handler),
        ("shell", "Open a shell in a user's container", shell_handler),
        ("ssh-info", "Show SSH connection info for a user", ssh_info_handler),
        ("config", "Show a user's registry row and compose service", config_handler),
    ]
    for name, help_text, handler in user_commands:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("user")
        p.set_defaults(handler=handler)

    p = sub.add_parser("doctor", help="Check registry and compose file consistency (read-only)")
    p.add_argument("user", nargs="?")
    p.set_defaults(handler=doctor_handler)

    sub.add_parser("list", help="List users and their containers").set_defaults(handler=list_handler)
    sub.add_parser("status", help="Show status of all containers").set_defaults(handler=status_handler)
    sub.add_parser("generate", help="Regenerate the compose file from the registry").set_defaults(handler=generate_handler)
    sub.add_parser("help", help="Show this help")
    return parser

def main(argv=None):
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    logging.captureWarnings(True)

    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command in (None, "help"):
        parser.print_help()
        return EXIT_OK if args.command == "help" else EXIT_USAGE

    try:
        return args.handler(build_service(), args)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    except SandboxError as e:
        return handle_exception(e)

if __name__ == "__main__":
    sys.exit(main())
