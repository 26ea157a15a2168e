#!/usr/bin/env python3
"""
CLI Module

Command-line interface for managing self-hosted runners on this host.
"""

import argparse
import sys
from pathlib import Path

from . import __version__
from .config import RunnerConfig
from .dashboard import REFRESH_INTERVAL, run_dashboard
from .exceptions import RunnerError
from .manager import RunnerManager


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='action-runners',
        description='GitHub Actions Self-Hosted Runner Manager',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Set up 4 runners for a repository (prompts for a registration token)
  action-runners setup myorg/myrepo 4

  # Install services for runners set up without one
  action-runners install-services myrepo

  # Control and inspect the runners of one repository
  action-runners restart myrepo
  action-runners status myrepo
  action-runners logs myrepo

  # Every runner on the host
  action-runners stop
  action-runners list
  action-runners health
  action-runners dashboard

  # Remove runner 2, or all runners of a repository
  action-runners remove myrepo 2
  action-runners remove myrepo all --yes
        """
    )
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    parser.add_argument('--base-dir', type=Path, help='Runner base directory (default: ~/action-runners)')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ERROR)')

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    # Setup command
    setup_parser = subparsers.add_parser('setup', help='Download, register and install runners for a repository')
    setup_parser.add_argument('github_repo', help='GitHub repository (owner/repo)')
    setup_parser.add_argument('count', nargs='?', type=int, help='Number of runners (default: 4)')
    setup_parser.add_argument('--token', help='Registration token (prompted for when omitted)')
    service_group = setup_parser.add_mutually_exclusive_group()
    service_group.add_argument('--service', dest='install_service', action='store_true', default=None,
                               help='Install every runner as a service without asking')
    service_group.add_argument('--no-service', dest='install_service', action='store_false',
                               help='Do not install services')

    # Install services command
    install_parser = subparsers.add_parser('install-services', help='Install and start services for a repository')
    install_parser.add_argument('repo', help='Repository name')

    # Start/stop/restart commands
    for action in ('start', 'stop', 'restart'):
        action_parser = subparsers.add_parser(action, help=f'{action.capitalize()} runner services')
        action_parser.add_argument('repo', nargs='?', help='Repository name (default: all runners)')

    # Status command
    status_parser = subparsers.add_parser('status', help='Show service status')
    status_parser.add_argument('repo', nargs='?', help='Repository name (default: all runners)')

    # Logs command
    logs_parser = subparsers.add_parser('logs', help='Follow (or show recent) runner logs')
    logs_parser.add_argument('repo', nargs='?', help='Repository name (default: all runners)')
    logs_parser.add_argument('-n', '--lines', type=int, help='Show this many recent lines instead of following')

    # Debug command
    debug_parser = subparsers.add_parser('debug', help='Diagnose service discovery for a repository')
    debug_parser.add_argument('repo', help='Repository name')

    # List command
    list_parser = subparsers.add_parser('list', help='List repositories, runners and service status')
    list_parser.add_argument('--remote', action='store_true',
                             help='Include GitHub online/busy state (requires GITHUB_TOKEN)')

    # Remove command
    remove_parser = subparsers.add_parser('remove', help='Remove a runner or all runners of a repository')
    remove_parser.add_argument('repo', help='Repository name')
    remove_parser.add_argument('runner', help="Runner number or 'all'")
    remove_parser.add_argument('-y', '--yes', action='store_true', help='Answer yes to every confirmation')
    remove_parser.add_argument('--keep-dir', action='store_true', help='Keep runner directories')

    # Health command
    subparsers.add_parser('health', help='Check that every runner service is active')

    # Update command
    subparsers.add_parser('update', help='Update every installed runner')

    # Dashboard command
    dashboard_parser = subparsers.add_parser('dashboard', help='Interactive terminal dashboard')
    dashboard_parser.add_argument('--interval', type=float, default=REFRESH_INTERVAL,
                                  help=f'Refresh interval in seconds (default: {REFRESH_INTERVAL:g})')

    return parser


def main(argv=None):
    """Main entry point for CLI"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        config = RunnerConfig()
    except RunnerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    # Override with CLI arguments
    if args.base_dir:
        config.base_dir = args.base_dir.expanduser()
    if args.log_level:
        config.log_level = args.log_level.upper()

    # Validate configuration
    errors = config.validate()
    if errors:
        print("Configuration errors:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    try:
        manager = RunnerManager(config)

        if args.command == 'setup':
            success = manager.setup(args.github_repo, args.count, token=args.token,
                                    install_service=args.install_service)
            return 0 if success else 1

        elif args.command == 'install-services':
            success = manager.install_services(args.repo)
            return 0 if success else 1

        elif args.command in ('start', 'stop', 'restart'):
            success = manager.control(args.command, args.repo)
            return 0 if success else 1

        elif args.command == 'status':
            manager.print_service_status(args.repo)
            return 0

        elif args.command == 'logs':
            if args.lines is not None and args.lines < 1:
                print("Error: --lines must be at least 1", file=sys.stderr)
                return 1
            return manager.show_logs(args.repo, lines=args.lines, follow=args.lines is None)

        elif args.command == 'debug':
            manager.debug(args.repo)
            return 0

        elif args.command == 'list':
            manager.print_list(remote=args.remote)
            return 0

        elif args.command == 'remove':
            delete_dir = False if args.keep_dir else None
            success = manager.remove(args.repo, args.runner, assume_yes=args.yes, delete_dir=delete_dir)
            return 0 if success else 1

        elif args.command == 'health':
            return 0 if manager.print_health() else 1

        elif args.command == 'update':
            return 0 if manager.update_all() else 1

        elif args.command == 'dashboard':
            if args.interval <= 0:
                print("Error: --interval must be positive", file=sys.stderr)
                return 1
            return run_dashboard(manager, refresh_interval=args.interval)

        else:
            parser.print_help()
            return 1

    except RunnerError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == '__main__':
    sys.exit(main())
