"""Command line interface for Locknote."""

from __future__ import annotations

import getpass
import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Callable

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from locknote import __version__
from locknote.config import SessionMode, SessionSettings
from locknote.container import codec, storage
from locknote.container.document import DocumentOpener, save_document
from locknote.container.format import (
    LOCKED_EXTENSION,
    Container,
    create_pending,
    is_pending,
    needs_migration,
    parse,
)
from locknote.container.keymgmt import resolve_encryption_params
from locknote.crypto.kdf import KDF_ARGON2ID
from locknote.errors import (
    ContainerFormatError,
    EmptyContainerError,
    InvalidPassword,
    LocknoteError,
    MigrationError,
    PendingContainerError,
    UnsupportedFeatureError,
)
from locknote.session import SessionCache

EXIT_SUCCESS = 0
EXIT_USAGE = 1
EXIT_CRYPTO = 2
EXIT_FS = 3
EXIT_CORRUPT = 4
EXIT_EMPTY = 5

PLAINTEXT_EXTENSION = "md"

console = Console()
logger = logging.getLogger(__name__)


def _package_version() -> str:
    try:
        return version("locknote")
    except PackageNotFoundError:
        return __version__


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _prompt_password(password_opt: str | None, *, confirm: bool = False, label: str = "Password") -> str:
    if password_opt is not None:
        return password_opt
    password = getpass.getpass(f"{label}: ")
    if confirm and getpass.getpass(f"Repeat {label.lower()}: ") != password:
        raise click.UsageError("Passwords do not match")
    if not password:
        raise click.UsageError("Password must not be empty")
    return password


def _hint_prompt(password_opt: str | None, path: Path) -> Callable[[str], str | None]:
    """Password source for :class:`DocumentOpener`.

    A password given on the command line is offered once; otherwise the user is
    asked interactively and an empty answer cancels.
    """
    offered = False

    def prompt(hint: str) -> str | None:
        nonlocal offered
        if password_opt is not None:
            if offered:
                return None
            offered = True
            return password_opt
        suffix = f" (hint: {hint})" if hint else ""
        return getpass.getpass(f"Password for {path.name}{suffix}: ") or None

    return prompt


def _locked_target(input_path: Path) -> Path:
    if input_path.suffix == f".{PLAINTEXT_EXTENSION}":
        return input_path.with_suffix(f".{LOCKED_EXTENSION}")
    return input_path.with_name(f"{input_path.name}.{LOCKED_EXTENSION}")


def _plaintext_target(container: Path, output_dir: Path | None) -> Path:
    if container.suffix == f".{LOCKED_EXTENSION}":
        target = container.with_suffix(f".{PLAINTEXT_EXTENSION}")
    else:
        target = container.with_name(f"{container.name}.{PLAINTEXT_EXTENSION}")
    if output_dir is not None:
        target = output_dir / target.name
    return target


def _ensure_writable(target: Path, overwrite: bool) -> None:
    if target.exists() and not overwrite:
        raise FileExistsError(f"Output {target} already exists")


def _params_table(container: Container) -> Table:
    enc = container.encryption
    kd = enc.key_derivation
    table = Table(show_header=False, box=None)
    table.add_row("Format/Version", f"{container.format} / {container.version}")
    table.add_row("Cipher", f"{enc.algorithm}-{enc.key_size}, {enc.iv_length}-byte IV")
    if kd.function == KDF_ARGON2ID:
        table.add_row(
            "Key derivation",
            f"{kd.function}: time={kd.iterations}, mem={kd.memory_cost_kib} KiB, p={kd.parallelism}",
        )
    else:
        table.add_row("Key derivation", f"{kd.function}-{kd.hash}, {kd.iterations} iterations")
    table.add_row("Salt length", f"{kd.salt_length} bytes")
    table.add_row("Key type", container.key_type)
    table.add_row("Hint", container.hint or "(none)")
    table.add_row("Needs migration", "yes" if needs_migration(container) else "no")
    return table


def _handle_action(
    action: Callable[[], None],
    *,
    invalid_password_message: str | None = None,
) -> int:
    try:
        action()
    except InvalidPassword:
        message = invalid_password_message or "[red]Invalid password[/red]"
        console.print(message)
        return EXIT_CRYPTO
    except click.ClickException as exc:
        console.print(f"[red]{exc.format_message()}[/red]")
        return EXIT_USAGE
    except EmptyContainerError as exc:
        console.print(f"[red]Empty container:[/red] {exc}")
        return EXIT_EMPTY
    except PendingContainerError:
        console.print("[yellow]Container is pending: no password has been set yet[/yellow]")
        return EXIT_CORRUPT
    except UnsupportedFeatureError as exc:
        console.print(f"[red]Unsupported container:[/red] {exc}")
        return EXIT_CORRUPT
    except ContainerFormatError as exc:
        console.print(f"[red]Error: container is corrupted or not supported:[/red] {exc}")
        return EXIT_CORRUPT
    except MigrationError as exc:
        console.print(f"[red]Migration failed, file left unchanged:[/red] {exc}")
        return EXIT_FS
    except FileExistsError as exc:
        console.print(f"[red]{exc}. Use --overwrite to replace.[/red]")
        return EXIT_FS
    except FileNotFoundError as exc:
        console.print(f"[red]File not found:[/red] {exc}")
        return EXIT_FS
    except PermissionError as exc:
        console.print(f"[red]Permission denied:[/red] {exc}")
        return EXIT_FS
    except OSError as exc:  # noqa: BLE001
        console.print(f"[red]Filesystem error:[/red] {exc}")
        return EXIT_FS
    except UnicodeDecodeError as exc:
        console.print(f"[red]Input is not UTF-8 text:[/red] {exc.reason}")
        return EXIT_USAGE
    except (LocknoteError, ValueError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return EXIT_USAGE
    except Exception as exc:  # noqa: BLE001
        logger.debug("Unexpected error", exc_info=True)
        console.print(f"[red]Unexpected error:[/red] {exc}")
        return EXIT_USAGE
    return EXIT_SUCCESS


@click.group(
    context_settings={"help_option_names": ["-h", "--help"]},
    invoke_without_command=False,
)
@click.version_option(version=_package_version(), prog_name="Locknote")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Log debug details to stderr.")
def cli(verbose: bool) -> None:
    """Password-protected text notes stored as self-describing .locked containers."""
    _configure_logging(verbose)


@cli.command(
    help="Encrypt a text file into a .locked container.",
    epilog="Examples:\n  locknote encrypt diary.md            # writes diary.locked\n  locknote encrypt notes.txt out.locked --hint 'blue door'",
)
@click.argument("input_path", type=click.Path(path_type=Path))
@click.argument("output_path", required=False, type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Encryption password (will prompt if omitted).")
@click.option("--hint", default="", help="Plaintext hint stored unencrypted in the container.")
@click.option(
    "--kdf",
    type=click.Choice(["pbkdf2", "argon2id"], case_sensitive=False),
    default=None,
    help="Key derivation function (PBKDF2 by default).",
)
@click.option(
    "--iterations",
    type=click.IntRange(min=1),
    default=None,
    help="PBKDF2 iterations, or Argon2id time cost.",
)
@click.option(
    "--overwrite/--no-overwrite",
    default=False,
    help="Overwrite output if it already exists.",
)
@click.pass_context
def encrypt(
    ctx: click.Context,
    input_path: Path,
    output_path: Path | None,
    password_opt: str | None,
    hint: str,
    kdf: str | None,
    iterations: int | None,
    overwrite: bool,
) -> None:
    target = output_path or _locked_target(input_path)

    def _run() -> None:
        try:
            params = resolve_encryption_params(kdf=kdf, iterations=iterations, base=codec.default_encryption_params())
        except UnsupportedFeatureError as exc:
            raise click.BadParameter(str(exc), param_hint="--kdf/--iterations") from exc
        plaintext = input_path.read_text(encoding="utf-8")
        _ensure_writable(target, overwrite)
        password = _prompt_password(password_opt, confirm=True)
        storage.atomic_write_text(target, save_document(plaintext, password, hint, params=params))

    code = _handle_action(_run)
    if code == EXIT_SUCCESS:
        console.print(f"[green]Encrypted to[/green] {target}.")
    ctx.exit(code)


@cli.command(
    help="Decrypt one or more .locked containers into text files.",
    epilog="Examples:\n  locknote decrypt diary.locked\n  locknote decrypt a.locked b.locked --output-dir ./plain",
)
@click.argument("containers", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Decryption password (will prompt if omitted).")
@click.option(
    "--session-mode",
    type=click.Choice([m.value for m in SessionMode], case_sensitive=False),
    default=None,
    help="What to remember between files (defaults to LOCKNOTE_SESSION_MODE or session-password).",
)
@click.option(
    "--output-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for decrypted files (next to each container by default).",
)
@click.option(
    "--overwrite/--no-overwrite",
    default=False,
    help="Overwrite existing plaintext files.",
)
@click.option(
    "--attempts",
    type=click.IntRange(min=1),
    default=3,
    show_default=True,
    help="Password attempts per file.",
)
@click.option(
    "--migrate/--no-migrate",
    "migrate_legacy",
    default=False,
    help="Rewrite legacy containers in the current format after opening them.",
)
@click.pass_context
def decrypt(
    ctx: click.Context,
    containers: tuple[Path, ...],
    password_opt: str | None,
    session_mode: str | None,
    output_dir: Path | None,
    overwrite: bool,
    attempts: int,
    migrate_legacy: bool,
) -> None:
    try:
        settings = SessionSettings.from_env()
    except ValidationError as exc:
        console.print(f"[red]Invalid session settings in environment:[/red] {exc}")
        ctx.exit(EXIT_USAGE)
    if session_mode is not None:
        settings = settings.model_copy(update={"mode": SessionMode(session_mode.lower())})

    exit_code = EXIT_SUCCESS
    with SessionCache(settings) as cache:
        for container_path in containers:
            opener = DocumentOpener(cache, _hint_prompt(password_opt, container_path), max_attempts=attempts)
            target = _plaintext_target(container_path, output_dir)

            def _run(container_path: Path = container_path, target: Path = target, opener: DocumentOpener = opener) -> None:
                _ensure_writable(target, overwrite)
                raw = storage.read_container_text(container_path)
                document = opener.open(str(container_path), raw)
                if document is None:
                    raise InvalidPassword(f"Could not open {container_path}")
                storage.atomic_write_text(target, document.plaintext)
                if migrate_legacy and needs_migration(document.container) and document.password is not None:
                    storage.migrate_file(container_path, document.password)
                    console.print(f"[green]Migrated[/green] {container_path} to the current format.")
                opener.close(str(container_path))

            code = _handle_action(_run, invalid_password_message=f"[red]Invalid password for[/red] {container_path}")
            if code == EXIT_SUCCESS:
                console.print(f"[green]Decrypted to[/green] {target}.")
            elif exit_code == EXIT_SUCCESS:
                exit_code = code
    ctx.exit(exit_code)


@cli.command(
    help="Display container parameters and hint without decrypting.",
    epilog="Example:\n  locknote info diary.locked",
)
@click.argument("container", type=click.Path(path_type=Path))
@click.pass_context
def info(ctx: click.Context, container: Path) -> None:
    def _run() -> None:
        parsed = parse(storage.read_container_text(container))
        console.print("[bold]Locknote container[/bold]")
        console.print(_params_table(parsed))

    ctx.exit(_handle_action(_run))


@cli.command(
    help="Classify a file as container, pending, empty or invalid, optionally verifying the password.",
    epilog="Example:\n  locknote check diary.locked --password pw",
)
@click.argument("container", type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Password for authentication (structure only if omitted).")
@click.pass_context
def check(ctx: click.Context, container: Path, password_opt: str | None) -> None:
    def _run() -> None:
        raw = storage.read_container_text(container)
        if is_pending(raw):
            console.print("[yellow]Pending container: no password has been set yet.[/yellow]")
            return
        parsed = parse(raw)
        parsed.unpack()
        console.print("[bold]Container check[/bold]")
        console.print(_params_table(parsed))
        if password_opt is None:
            console.print("[yellow]Authentication skipped (no password supplied).[/yellow]")
            return
        if codec.decode(parsed, password_opt) is None:
            raise InvalidPassword("Password does not decrypt the container")
        console.print("[green]Password verified; ciphertext is intact.[/green]")

    ctx.exit(_handle_action(_run, invalid_password_message="[red]Invalid password or damaged ciphertext[/red]"))


@cli.command(
    help="Rewrite legacy containers in the current format.",
    epilog="Example:\n  locknote migrate old1.locked old2.locked",
)
@click.argument("containers", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Container password (will prompt if omitted).")
@click.pass_context
def migrate(ctx: click.Context, containers: tuple[Path, ...], password_opt: str | None) -> None:
    password = _prompt_password(password_opt)
    exit_code = EXIT_SUCCESS
    for container_path in containers:
        outcome: dict[str, bool] = {}

        def _run(container_path: Path = container_path) -> None:
            migrated = storage.migrate_file(container_path, password)
            if migrated is None:
                raise InvalidPassword(f"Could not open {container_path}")
            outcome["migrated"] = migrated

        code = _handle_action(_run, invalid_password_message=f"[red]Invalid password for[/red] {container_path}")
        if code == EXIT_SUCCESS:
            if outcome["migrated"]:
                console.print(f"[green]Migrated[/green] {container_path}.")
            else:
                console.print(f"{container_path} is already current.")
        elif exit_code == EXIT_SUCCESS:
            exit_code = code
    ctx.exit(exit_code)


@cli.command(
    help="Write a pending placeholder container for a note without a password yet.",
    epilog="Example:\n  locknote pending new-note.locked",
)
@click.argument("output_path", type=click.Path(path_type=Path))
@click.option("--overwrite/--no-overwrite", default=False, help="Overwrite output if it already exists.")
@click.pass_context
def pending(ctx: click.Context, output_path: Path, overwrite: bool) -> None:
    def _run() -> None:
        _ensure_writable(output_path, overwrite)
        storage.atomic_write_text(output_path, create_pending())

    code = _handle_action(_run)
    if code == EXIT_SUCCESS:
        console.print(f"[green]Pending container written to[/green] {output_path}.")
    ctx.exit(code)


@cli.command(
    help="Change the password (and optionally the hint) of a container.",
    epilog="Example:\n  locknote passwd diary.locked --hint 'new hint'",
)
@click.argument("container", type=click.Path(path_type=Path))
@click.option("--password", "password_opt", help="Current password (will prompt if omitted).")
@click.option("--new-password", "new_password_opt", help="New password (will prompt if omitted).")
@click.option("--hint", default=None, help="New hint (kept unchanged if omitted).")
@click.pass_context
def passwd(
    ctx: click.Context,
    container: Path,
    password_opt: str | None,
    new_password_opt: str | None,
    hint: str | None,
) -> None:
    def _run() -> None:
        raw = storage.read_container_text(container)
        parsed = parse(raw)
        old_password = _prompt_password(password_opt, label="Current password")
        if codec.decode(parsed, old_password) is None:
            raise InvalidPassword("Current password does not decrypt the container")
        new_password = _prompt_password(new_password_opt, confirm=True, label="New password")
        storage.atomic_write_text(container, codec.change_password(parsed, old_password, new_password, hint))

    code = _handle_action(_run, invalid_password_message="[red]Current password is invalid[/red]")
    if code == EXIT_SUCCESS:
        console.print(f"[green]Password changed for[/green] {container}.")
    ctx.exit(code)


@cli.command(name="version", help="Print the Locknote version.")
@click.pass_context
def show_version(ctx: click.Context) -> None:
    console.print(f"Locknote {_package_version()}")
    ctx.exit(EXIT_SUCCESS)


def main(argv: list[str] | None = None) -> int:
    try:
        return cli.main(args=argv, prog_name="locknote", standalone_mode=False)
    except click.ClickException as exc:
        exc.show()
        return EXIT_USAGE
    except click.Abort:
        console.print("[red]Aborted.[/red]")
        return EXIT_USAGE
    except SystemExit as exc:  # noqa: TRY003
        code = exc.code if isinstance(exc.code, int) else EXIT_USAGE
        return code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
