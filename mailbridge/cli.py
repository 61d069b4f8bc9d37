"""Command line front-end for MailBridge."""

import argparse
import asyncio
import mimetypes
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from mailbridge import __version__
from mailbridge.core.bridge import MailBridge
from mailbridge.utils.errors import FileSystemError, MailBridgeError, format_error_message
from mailbridge.utils.logging import async_log_call, get_logger, init_logging

logger = get_logger(__name__)


def setup_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailbridge",
        description="Unified mail client - IMAP, POP3 and SMTP behind one interface.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console logging level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    inbox_parser = subparsers.add_parser("inbox", help="List the newest messages")
    inbox_parser.add_argument("--protocol", choices=["imap", "pop3"], default="imap")
    inbox_parser.add_argument("--mailbox", default="INBOX", help="IMAP mailbox")
    inbox_parser.add_argument("--limit", type=int, default=50, help="Number of messages")

    subparsers.add_parser("mailboxes", help="Show the IMAP mailbox tree")

    search_parser = subparsers.add_parser("search", help="Search an IMAP mailbox")
    search_parser.add_argument("--from", dest="sender", help="Sender contains")
    search_parser.add_argument("--to", help="Recipient contains")
    search_parser.add_argument("--subject", help="Subject contains")
    search_parser.add_argument("--body", help="Body contains")
    search_parser.add_argument("--since", help="On or after date (YYYY-MM-DD)")
    search_parser.add_argument("--before", help="Before date (YYYY-MM-DD)")
    search_parser.add_argument("--unseen", action="store_true", help="Unread only")
    search_parser.add_argument("--mailbox", default="INBOX")

    read_parser = subparsers.add_parser("read", help="Mark an IMAP message as read")
    read_parser.add_argument("id", help="Sequence number from the latest listing")
    read_parser.add_argument("--mailbox", default="INBOX")

    delete_parser = subparsers.add_parser("delete", help="Delete a message")
    delete_parser.add_argument("id", help="Sequence number (IMAP) or ordinal (POP3)")
    delete_parser.add_argument("--protocol", choices=["imap", "pop3"], default="imap")
    delete_parser.add_argument("--mailbox", default="INBOX", help="IMAP mailbox")

    show_parser = subparsers.add_parser("show", help="Show one POP3 message")
    show_parser.add_argument("ordinal", help="Message ordinal")

    subparsers.add_parser("info", help="POP3 mailbox summary")

    send_parser = subparsers.add_parser("send", help="Send a message")
    send_parser.add_argument("--to", required=True, help="Comma separated recipients")
    send_parser.add_argument("--subject", default="")
    send_parser.add_argument("--text", default="", help="Plain text body")
    send_parser.add_argument("--html", help="HTML body")
    send_parser.add_argument("--cc")
    send_parser.add_argument("--bcc")
    send_parser.add_argument("--attach", action="append", default=[], help="File to attach")

    return parser


def load_attachments(paths: Sequence[str]) -> List[Dict[str, Any]]:
    """Read files to attach.

    Raises:
        FileSystemError: If a file cannot be read
    """
    attachments = []
    for name in paths:
        path = Path(name).expanduser()
        try:
            content = path.read_bytes()
        except OSError as e:
            raise FileSystemError(
                f"Cannot read attachment: {path}", details={"path": str(path)}
            ) from e

        content_type, _ = mimetypes.guess_type(path.name)
        attachments.append(
            {
                "filename": path.name,
                "content": content,
                "contentType": content_type or "application/octet-stream",
            }
        )
    return attachments


def build_request(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate parsed arguments into a MailBridge request."""
    command = args.command

    if command == "inbox":
        params: Dict[str, Any] = {"limit": args.limit}
        if args.protocol == "imap":
            params["mailbox"] = args.mailbox
        return {"protocol": args.protocol, "operation": "inbox", "params": params}

    if command == "mailboxes":
        return {"protocol": "imap", "operation": "mailboxes", "params": {}}

    if command == "search":
        criteria = {
            "from": args.sender,
            "to": args.to,
            "subject": args.subject,
            "body": args.body,
            "since": args.since,
            "before": args.before,
            "unseen": args.unseen or None,
        }
        return {
            "protocol": "imap",
            "operation": "search",
            "params": {
                "criteria": {key: value for key, value in criteria.items() if value is not None},
                "mailbox": args.mailbox,
            },
        }

    if command == "read":
        return {
            "protocol": "imap",
            "operation": "mark_read",
            "params": {"id": args.id, "mailbox": args.mailbox},
        }

    if command == "delete":
        if args.protocol == "pop3":
            return {"protocol": "pop3", "operation": "delete", "params": {"ordinal": args.id}}
        return {
            "protocol": "imap",
            "operation": "delete",
            "params": {"id": args.id, "mailbox": args.mailbox},
        }

    if command == "show":
        return {"protocol": "pop3", "operation": "retrieve", "params": {"ordinal": args.ordinal}}

    if command == "info":
        return {"protocol": "pop3", "operation": "info", "params": {}}

    if command == "send":
        message = {
            "to": args.to,
            "subject": args.subject,
            "text": args.text,
            "html": args.html,
            "cc": args.cc,
            "bcc": args.bcc,
            "attachments": load_attachments(args.attach),
        }
        return {
            "protocol": "smtp",
            "operation": "send",
            "params": {key: value for key, value in message.items() if value},
        }

    raise ValueError(f"Unknown command: {command}")


## Display helpers


def display_messages(emails: List[Dict[str, Any]], title: str, console: Console) -> None:
    if not emails:
        console.print("[yellow]No messages found.[/yellow]")
        return

    table = Table(title=title, show_lines=False)
    table.add_column("ID", justify="right", style="cyan", no_wrap=True)
    table.add_column("Date", style="green", no_wrap=True)
    table.add_column("From", style="magenta", max_width=30)
    table.add_column("Subject")
    table.add_column("Att", justify="center")

    for email in emails:
        table.add_row(
            str(email["id"]),
            email["date"][:16].replace("T", " "),
            escape(email["from"] or "-"),
            escape(email["subject"]),
            str(len(email["attachments"])) if email["attachments"] else "",
        )

    console.print(table)


def _add_mailbox_nodes(tree: Tree, nodes: List[Dict[str, Any]]) -> None:
    for node in nodes:
        label = escape(node["name"])
        if node["attributes"]:
            label += f" [dim]{' '.join(node['attributes'])}[/dim]"
        branch = tree.add(label)
        _add_mailbox_nodes(branch, node["children"])


def display_email(email: Dict[str, Any], console: Console) -> None:
    header = (
        f"[bold]From:[/bold] {escape(email['from'])}\n"
        f"[bold]To:[/bold] {escape(email['to'])}\n"
        f"[bold]Date:[/bold] {email['date']}\n"
        f"[bold]Subject:[/bold] {escape(email['subject'])}"
    )
    if email["cc"]:
        header += f"\n[bold]Cc:[/bold] {escape(email['cc'])}"
    console.print(Panel(header, title=f"Message {email['id']}"))
    console.print(email["text"] or email["html"] or "[dim](empty body)[/dim]", markup=False)

    for attachment in email["attachments"]:
        console.print(
            f"[cyan]Attachment:[/cyan] {escape(attachment['filename'])} "
            f"({attachment['contentType']}, {attachment['size']} bytes)"
        )


def display_result(command: str, result: Dict[str, Any], console: Console) -> None:
    if "emails" in result:
        display_messages(result["emails"], f"{command.title()} ({result['count']})", console)
    elif "mailboxes" in result:
        tree = Tree("[bold]Mailboxes[/bold]")
        _add_mailbox_nodes(tree, result["mailboxes"])
        console.print(tree)
    elif "email" in result:
        display_email(result["email"], console)
    elif "messageId" in result:
        console.print(f"[green]Sent[/green] {result['messageId']}")
        console.print(f"[dim]{result['response']}[/dim]")
    elif command == "info":
        console.print(f"[bold]{result['count']}[/bold] messages")
        for entry in result["messages"]:
            console.print(f"  {entry['ordinal']:>5}  {entry['size']:>10} bytes")
    else:
        console.print(f"[green]{result.get('message') or 'Done'}[/green]")


@async_log_call
async def dispatch_command(
    args: argparse.Namespace, console: Console, bridge: Optional[MailBridge] = None
) -> int:
    """Run one command.

    Returns:
        Exit code (0 = success, 1 = error)
    """
    owns_bridge = bridge is None
    bridge = bridge or MailBridge()

    try:
        request = build_request(args)
        result = await bridge.handle(request)

        if not result.get("success"):
            console.print(f"[red]Error: {result.get('error')}[/red]")
            return 1

        display_result(args.command, result, console)
        return 0

    except MailBridgeError as e:
        logger.error(f"Command failed: {e.message}")
        console.print(f"[red]Error: {format_error_message(e)}[/red]")
        return 1

    finally:
        if owns_bridge:
            await bridge.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = Console()

    try:
        parser = setup_argument_parser()
        args = parser.parse_args(argv)

        init_logging().set_level(args.log_level)

        return asyncio.run(dispatch_command(args, console))

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130  # Standard SIGINT exit code

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        console.print(f"[red]Fatal error: {format_error_message(e)}[/red]")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
