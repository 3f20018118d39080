"""
Sonix Flasher CLI

Command-line interface for validating and flashing SN32 keyboard firmware.
"""

import sys
import logging
import json
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn

from sonix_flasher.models import DeviceDescriptor, get_device, list_devices, lookup, SONIX_VENDOR_ID
from sonix_flasher.firmware_tools import (
    ValidationError,
    describe_firmware,
    load_firmware,
    validate_firmware,
)
from sonix_flasher.protocol import (
    HIDTransport,
    ProgressEvent,
    ProgressStep,
    REBOOT_SETTLE_SECONDS,
    SimulatedDevice,
)
from sonix_flasher.core.parsing import parse_int as _parse_int_core
from sonix_flasher.core.safety import (
    SafetyContext,
    require_write_permission,
    WritePermissionError,
    CONFIRMATION_TOKEN,
)
from sonix_flasher.core.results import OperationResult
from sonix_flasher.core.actions import (
    flash_firmware as core_flash_firmware,
    validate_firmware_file as core_validate_firmware_file,
)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)],
)
logger = logging.getLogger("sonix_flasher")

# Setup Rich console
console = Console()

app = typer.Typer(help="Sonix SN32 keyboard firmware flasher (bootloader mode)")

STATUS_TEXT = {
    ProgressStep.INITIALIZE: "Initializing device",
    ProgressStep.PREPARE: "Preparing for flashing",
    ProgressStep.FLASH: "Writing firmware",
    ProgressStep.REBOOT: "Rebooting device",
    ProgressStep.COMPLETE: "Complete",
}


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    console.print(f"❌ {text}", style="red")


def print_result(result: OperationResult) -> None:
    """Print warnings and errors from an OperationResult."""
    for warning in result.warnings:
        print_warning(warning)
    for error in result.errors:
        print_error(error)


def parse_int(value: Optional[str], label: str) -> Optional[int]:
    """
    CLI wrapper around core.parsing.parse_int that converts
    ValueError to typer.BadParameter.
    """
    try:
        return _parse_int_core(value)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid {label}: {e}")


def resolve_device(
    device: Optional[str],
    vid: Optional[str],
    pid: Optional[str],
) -> DeviceDescriptor:
    """
    Resolve the target device from --device or --vid/--pid.

    Raises:
        typer.BadParameter: If the device is not in the registry
    """
    if device:
        descriptor = get_device(device)
        if descriptor is None:
            raise typer.BadParameter(
                f"Unknown device '{device}'. Run 'list-devices' for supported devices."
            )
        return descriptor

    vendor_id = parse_int(vid, "vid")
    product_id = parse_int(pid, "pid")
    if product_id is None:
        raise typer.BadParameter("Specify --device or --pid")
    if vendor_id is None:
        vendor_id = SONIX_VENDOR_ID

    descriptor = lookup(vendor_id, product_id)
    if descriptor is None:
        raise typer.BadParameter(
            f"Unsupported device {vendor_id:04x}:{product_id:04x}. "
            f"Run 'list-devices' for supported devices."
        )
    return descriptor


def confirm_flash_with_details(
    write_flag: bool,
    descriptor: DeviceDescriptor,
    bytes_length: int,
    confirm_token: Optional[str] = None,
) -> None:
    """
    Require explicit --write flag AND typed confirmation before flashing.

    Supports three modes:
    1. Non-interactive (script): --confirm FLASH provided, no prompts
    2. Interactive (TTY): prompts user for typed confirmation
    3. Non-interactive without token: errors with remediation

    Raises:
        typer.Abort: If confirmation fails or the flash is not permitted
    """
    if confirm_token is None and not sys.stdin.isatty():
        console.print()
        print_error("Non-interactive environment detected but no confirmation token provided.")
        console.print()
        console.print("[bold]For scripted/non-interactive use, provide:[/bold]")
        console.print(f"  --write --confirm {CONFIRMATION_TOKEN}")
        raise typer.Abort()

    def show_details(details: dict) -> None:
        console.print()
        console.print(Panel(
            f"[bold yellow]⚠️  FLASH CONFIRMATION REQUIRED[/bold yellow]\n\n"
            f"Device:        {details.get('device', 'Unknown')}\n"
            f"Bytes:         {details.get('bytes_length', 0):,}\n"
            f"Offset:        {details.get('offset', '')}\n"
            f"\nAn interrupted flash leaves the keyboard without working firmware.\n"
            f"\n[bold]Type '{CONFIRMATION_TOKEN}' to proceed, or anything else to abort:[/bold]",
            title="Firmware Flash Operation",
            expand=False,
        ))

    def prompt_confirmation(prompt_text: str) -> str:
        return typer.prompt("Confirm")

    ctx = SafetyContext(
        write_enabled=write_flag,
        confirmation_token=confirm_token,
        interactive=confirm_token is None,
        device=descriptor.description,
        prompt_confirmation=prompt_confirmation,
        show_details=show_details,
    )

    try:
        require_write_permission(ctx, bytes_length=bytes_length, offset=descriptor.qmk_offset)
    except WritePermissionError as e:
        if "requires explicit permission" in str(e):
            print_error("Flash operation requires --write flag.")
            console.print(f"  Device:        {descriptor.description}")
            console.print(f"  Bytes:         {bytes_length:,}")
        else:
            print_error(str(e))
        raise typer.Abort()

    print_success("Confirmation accepted. Proceeding with flash...")


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output (HID reports)"),
) -> None:
    """Sonix SN32 keyboard firmware flasher."""
    if verbose:
        logger.setLevel(logging.DEBUG)


@app.command("list-devices")
def list_devices_cmd(
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
) -> None:
    """List supported bootloader devices."""
    devices = list_devices()

    if output_json:
        console.print_json(json.dumps([d.to_dict() for d in devices]))
        return

    table = Table(title="Supported Devices")
    table.add_column("VID:PID", style="cyan")
    table.add_column("Description", style="green")
    table.add_column("Load Offset", style="magenta")
    table.add_column("Max Firmware", justify="right")

    for d in devices:
        table.add_row(
            f"{d.vendor_id:04x}:{d.product_id:04x}",
            d.description,
            f"0x{d.qmk_offset:X}",
            f"{d.max_firmware_size:,} bytes",
        )

    console.print(table)


@app.command()
def validate(
    firmware: str = typer.Argument(..., help="Firmware .bin file"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help="Chip name or PID (e.g. SN32F248B, 0x7040)"),
    vid: Optional[str] = typer.Option(None, "--vid", help="USB vendor id (default 0x0c45)"),
    pid: Optional[str] = typer.Option(None, "--pid", help="USB product id"),
) -> None:
    """Check a firmware image against a device without touching hardware."""
    descriptor = resolve_device(device, vid, pid)

    result = core_validate_firmware_file(firmware, descriptor)
    print_result(result)
    if not result.ok:
        sys.exit(1)

    print_success(f"Firmware is valid for {descriptor.description} ({result.bytes_len:,} bytes)")


@app.command()
def info(
    firmware: str = typer.Argument(..., help="Firmware .bin file"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help="Chip name or PID"),
    vid: Optional[str] = typer.Option(None, "--vid", help="USB vendor id (default 0x0c45)"),
    pid: Optional[str] = typer.Option(None, "--pid", help="USB product id"),
    output_json: bool = typer.Option(False, "--json", "-j", help="Output as JSON for scripting"),
) -> None:
    """Show firmware size, padding and vector table for a device."""
    descriptor = resolve_device(device, vid, pid)

    try:
        data = load_firmware(firmware)
    except FileNotFoundError as e:
        print_error(str(e))
        sys.exit(1)

    details = describe_firmware(descriptor, data)
    if output_json:
        console.print_json(json.dumps(details))
        return

    table = Table(title=f"Firmware for {descriptor.description}")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    for key, value in details.items():
        if isinstance(value, list):
            value = ", ".join(value)
        elif isinstance(value, int):
            value = f"{value:,}"
        table.add_row(key, str(value))
    console.print(table)


@app.command()
def flash(
    firmware: str = typer.Argument(..., help="Firmware .bin file"),
    device: Optional[str] = typer.Option(None, "--device", "-d", help="Chip name or PID"),
    vid: Optional[str] = typer.Option(None, "--vid", help="USB vendor id (default 0x0c45)"),
    pid: Optional[str] = typer.Option(None, "--pid", help="USB product id"),
    path: Optional[str] = typer.Option(None, "--path", help="HID device path (if several are attached)"),
    write: bool = typer.Option(False, "--write", help="Required flag to enable actual flashing"),
    confirm: Optional[str] = typer.Option(
        None,
        "--confirm",
        help=f"Non-interactive confirmation token (must be '{CONFIRMATION_TOKEN}')",
    ),
    simulate: bool = typer.Option(False, "--simulate", help="Run against a simulated bootloader"),
    settle_delay: float = typer.Option(
        REBOOT_SETTLE_SECONDS, "--settle-delay", help="Seconds to wait after reboot"
    ),
) -> None:
    """
    Flash firmware to a keyboard in bootloader mode.

    Steps:
    1. Initialize the bootloader
    2. Prepare flash (load offset and length)
    3. Stream firmware in 64-byte reports
    4. Reboot into the new firmware
    """
    print_header("Flash Firmware")
    descriptor = resolve_device(device, vid, pid)

    try:
        data = load_firmware(firmware)
    except FileNotFoundError as e:
        print_error(str(e))
        sys.exit(1)

    try:
        validate_firmware(descriptor, data)
    except ValidationError as e:
        print_error(f"Invalid firmware: {e}")
        sys.exit(1)

    if simulate:
        transport = HIDTransport(
            descriptor.vendor_id,
            descriptor.product_id,
            device=SimulatedDevice(flash_size=descriptor.size_limit),
        )
    else:
        try:
            confirm_flash_with_details(write, descriptor, len(data), confirm_token=confirm)
        except typer.Abort:
            print_warning("Flash cancelled")
            sys.exit(1)
        transport = HIDTransport(
            descriptor.vendor_id,
            descriptor.product_id,
            path=path.encode() if path else None,
        )

    ctx = SafetyContext(
        write_enabled=True,
        confirmation_token=CONFIRMATION_TOKEN,
        interactive=False,
        device=descriptor.description,
        simulate=simulate,
    )

    try:
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.percentage:.0f}%]"),
            console=console,
        ) as progress:
            task = progress.add_task(STATUS_TEXT[ProgressStep.INITIALIZE], total=100)

            def on_progress(event: ProgressEvent) -> None:
                progress.update(
                    task,
                    description=STATUS_TEXT[event.step],
                    completed=event.progress * 100,
                )

            result = core_flash_firmware(
                descriptor,
                data,
                ctx,
                transport=transport,
                progress_cb=on_progress,
                settle_delay=settle_delay,
            )
    finally:
        transport.close()

    print_result(result)
    if not result.ok:
        sys.exit(1)

    print_success(f"Flashed {result.bytes_len:,} bytes to {descriptor.description}")


def main() -> None:
    """Main entry point."""
    try:
        app()
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
