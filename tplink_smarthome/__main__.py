#!/usr/bin/env python3

# Copyright (c) 2023 Samuel J. McKelvie
#
# MIT License - See LICENSE file accompanying this package.
#

from __future__ import annotations

import os
import sys
import argparse
import json
import asyncio
import logging

from tplink_smarthome.internal_types import *

from tplink_smarthome import (
    __version__ as pkg_version,
    TpLinkError,
    ValidationError,
    Transport,
    TcpTransport,
    DeviceData,
    SysInfo,
    Location,
    Switch,
    Dimmer,
    DeviceActions,
    Device,
    DiscoveryClient,
    identify,
    parse_address,
    format_address,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    DEFAULT_DISCOVERY_TIMEOUT,
  )
from tplink_smarthome.capabilities import validate_brightness

TIMEOUT_ENV_VAR = "TPLINK_SMARTHOME_TIMEOUT"
"""Environment variable that provides the default for --timeout"""

Row = List[Tuple[str, Jsonable]]
"""A table row for the short and long formats: (column title, value) pairs in display order"""

class CmdExitError(RuntimeError):
    exit_code: int

    def __init__(self, exit_code: int, msg: Optional[str]=None):
        if msg is None:
            msg = f"Command exited with return code {exit_code}"
        super().__init__(msg)
        self.exit_code = exit_code

class ArgparseExitError(CmdExitError):
    pass

class NoExitArgumentParser(argparse.ArgumentParser):
    def exit(self, status=0, message=None):
        if message:
            self._print_message(message, sys.stderr)
        raise ArgparseExitError(status, message)

def human_stringify(value: Jsonable) -> str:
    if value is None:
        return "-"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(human_stringify(x) for x in value)
    if isinstance(value, dict):
        return json.dumps(value, sort_keys=True)
    return str(value)

def format_table(rows: List[Row]) -> str:
    """Renders rows as a text table with padded columns separated by " | ".

    Columns appear in the order their titles are first seen; a row with no value for a
    column shows "-".
    """
    widths: Dict[str, int] = {}
    processed: List[Dict[str, str]] = []
    for row in rows:
        proc: Dict[str, str] = {}
        for title, value in row:
            text = human_stringify(value)
            proc[title] = text
            widths[title] = max(widths.get(title, len(title)), len(text))
        processed.append(proc)
    lines = [
        " " + " | ".join(title.ljust(width) for title, width in widths.items()) + " ",
        "-" + "-+-".join("-" * width for width in widths.values()) + "-",
      ]
    for proc in processed:
        lines.append(" " + " | ".join(proc.get(title, "-").ljust(width) for title, width in widths.items()) + " ")
    return "\n".join(lines)

def format_signal(sysinfo: SysInfo) -> Optional[str]:
    rssi = sysinfo.rssi
    return None if rssi is None else f"{rssi} dB"

async def device_is_on(device: Device) -> Optional[bool]:
    """Returns the device's on/off state, or None if it has no switch or the query fails."""
    if not isinstance(device, Switch):
        return None
    try:
        return await device.is_on()
    except TpLinkError as ex:
        logging.debug(f"Unable to read on/off state of {device}: {ex}")
        return None

async def device_location(device: Device) -> Optional[Location]:
    if not isinstance(device, DeviceActions):
        return None
    try:
        return await device.location()
    except TpLinkError as ex:
        logging.debug(f"Unable to read location of {device}: {ex}")
        return None

class CommandHandler:
    _argv: Optional[Sequence[str]]
    _parser: argparse.ArgumentParser
    _args: argparse.Namespace
    _provide_traceback: bool = True
    _errors: int = 0

    def __init__(self, argv: Optional[Sequence[str]]=None):
        self._argv = argv

    async def cmd_bare(self) -> int:
        print("A command is required", file=sys.stderr)
        return 1

    @property
    def output_format(self) -> str:
        if self._args.json:
            return "json"
        if self._args.long:
            return "long"
        return "short"

    def get_transport(self) -> Transport:
        return TcpTransport(timeout_secs=self._args.timeout)

    def get_addresses(self) -> List[HostAndPort]:
        port: int = self._args.port
        return [parse_address(address, default_port=port) for address in self._args.addresses]

    def output(self, rows: Sequence[Union[Row, JsonableDict]]) -> None:
        if self.output_format == "json":
            print(json.dumps(list(rows), indent=2))
        else:
            print(format_table(cast(List[Row], list(rows))))
        sys.stdout.flush()

    def report_error(self, addr: HostAndPort, ex: TpLinkError) -> None:
        """Reports a failure for one address and lets the command continue with the others."""
        if self._provide_traceback:
            raise ex
        self._errors += 1
        print(f"While querying {format_address(addr)}: {ex}", file=sys.stderr)

    async def status_row(self, addr: HostAndPort, device: Device, sysinfo: SysInfo) -> Union[Row, JsonableDict]:
        fmt = self.output_format
        if fmt == "json":
            location = await device_location(device)
            return {
                "addr": format_address(addr),
                "device": device.kind.value,
                "data": {
                    "system": sysinfo.to_jsonable(),
                    "location": None if location is None else [location.latitude, location.longitude],
                },
            }
        is_on = await device_is_on(device)
        if fmt == "long":
            location = await device_location(device)
            return [
                ("Address", format_address(addr)),
                ("MAC", sysinfo.mac),
                ("Alias", sysinfo.alias),
                ("Product", sysinfo.dev_name),
                ("Type", sysinfo.hw_type),
                ("Model", sysinfo.model),
                ("Version", sysinfo.sw_ver),
                ("Signal", format_signal(sysinfo)),
                ("Latitude", None if location is None else location.latitude),
                ("Longitude", None if location is None else location.longitude),
                ("Mode", sysinfo.active_mode),
                ("On?", is_on),
              ]
        return [
            ("Address", format_address(addr)),
            ("Alias", sysinfo.alias),
            ("Product", sysinfo.dev_name),
            ("Model", sysinfo.model),
            ("Signal", format_signal(sysinfo)),
            ("On?", is_on),
          ]

    def actioned_row(
            self,
            addr: HostAndPort,
            device: Device,
            sysinfo: SysInfo,
            action: str,
            result: Jsonable
          ) -> Union[Row, JsonableDict]:
        fmt = self.output_format
        if fmt == "json":
            return {
                "addr": format_address(addr),
                "actioned": { "action": action, "result": result },
                "device": device.kind.value,
                "data": { "system": sysinfo.to_jsonable() },
            }
        if fmt == "long":
            return [
                ("Address", format_address(addr)),
                ("MAC", sysinfo.mac),
                ("Alias", sysinfo.alias),
                ("Product", sysinfo.dev_name),
                ("Type", sysinfo.hw_type),
                ("Model", sysinfo.model),
                ("Version", sysinfo.sw_ver),
                (action, result),
              ]
        return [
            ("Address", format_address(addr)),
            ("Alias", sysinfo.alias),
            ("Product", sysinfo.dev_name),
            ("Model", sysinfo.model),
            (action, result),
          ]

    async def for_each_address(
            self,
            handler: Callable[[HostAndPort, Device, SysInfo], Awaitable[Union[Row, JsonableDict]]]
          ) -> int:
        """Identifies every address concurrently, applies handler to each device found, and outputs the rows.

        Addresses that cannot be queried are reported on stderr and omitted from the output.
        """
        transport = self.get_transport()
        addresses = self.get_addresses()

        async def process(addr: HostAndPort) -> Optional[Union[Row, JsonableDict]]:
            try:
                device, sysinfo = await identify(addr, transport=transport)
                return await handler(addr, device, sysinfo)
            except TpLinkError as ex:
                self.report_error(addr, ex)
                return None

        results = await asyncio.gather(*[process(addr) for addr in addresses])
        self.output([row for row in results if row is not None])
        return 0 if self._errors == 0 else 1

    async def perform_action(
            self,
            action: str,
            capability: type,
            func: Callable[[Any], Awaitable[None]],
          ) -> int:
        """Runs func on every addressed device that implements capability.

        Failures of the action itself are reported in the result column, not as errors.
        """
        async def handler(addr: HostAndPort, device: Device, sysinfo: SysInfo) -> Union[Row, JsonableDict]:
            result: Jsonable
            if not isinstance(device, capability):
                result = f"Error: not supported by {device.kind.value} devices"
            else:
                try:
                    await func(device)
                    result = True
                except TpLinkError as ex:
                    result = f"Error: {ex}"
            return self.actioned_row(addr, device, sysinfo, action, result)
        return await self.for_each_address(handler)

    async def cmd_discover(self) -> int:
        transport = self.get_transport()
        async with DiscoveryClient(
                timeout=self._args.discover_timeout,
                broadcast_addresses=self._args.broadcast_addresses,
                port=self._args.port,
                all_interfaces=self._args.all_interfaces,
                framed=not self._args.unframed,
              ) as client:
            found: Dict[HostAndPort, DeviceData] = await client.discover()

        async def discovered_row(addr: HostAndPort, data: DeviceData) -> Optional[Union[Row, JsonableDict]]:
            try:
                device = data.device(transport=transport)
                if self.output_format == "json":
                    return {
                        "addr": format_address(addr),
                        "device": device.kind.value,
                        "data": data.payload,
                    }
                return await self.status_row(addr, device, data.sysinfo())
            except TpLinkError as ex:
                self.report_error(addr, ex)
                return None

        results = await asyncio.gather(*[discovered_row(addr, data) for addr, data in found.items()])
        self.output([row for row in results if row is not None])
        return 0 if self._errors == 0 else 1

    async def cmd_status(self) -> int:
        return await self.for_each_address(self.status_row)

    async def cmd_reboot(self) -> int:
        delay: int = self._args.delay
        if delay < 0:
            raise ValidationError(f"Reboot delay must be a non-negative integer, got {delay}")
        return await self.perform_action("Rebooted?", DeviceActions, lambda device: device.reboot(delay))

    async def cmd_on(self) -> int:
        return await self.perform_action("Switched on?", Switch, lambda device: device.switch_on())

    async def cmd_off(self) -> int:
        return await self.perform_action("Switched off?", Switch, lambda device: device.switch_off())

    async def cmd_brightness(self) -> int:
        level = validate_brightness(self._args.level)
        return await self.perform_action(f"Brightness {level}%?", Dimmer, lambda device: device.set_brightness(level))

    async def cmd_version(self) -> int:
        print(pkg_version)
        return 0

    def get_default_timeout(self) -> float:
        value = os.environ.get(TIMEOUT_ENV_VAR, '')
        if value == '':
            return DEFAULT_TIMEOUT
        try:
            return float(value)
        except ValueError as ex:
            raise CmdExitError(1, f"Invalid {TIMEOUT_ENV_VAR} value: {value!r}") from ex

    async def arun(self) -> int:
        """Run the tplink-smarthome command-line tool with provided arguments

        Args:
            argv (Optional[Sequence[str]], optional):
                A list of commandline arguments (NOT including the program as argv[0]!),
                or None to use sys.argv[1:]. Defaults to None.

        Returns:
            int: The exit code that would be returned if this were run as a standalone command.
        """
        parser = NoExitArgumentParser(description="Discover and interact with TP-Link smart home devices on the local network.")


        # ======================= Main command

        self._parser = parser
        parser.add_argument('--traceback', "--tb", action='store_true', default=False,
                            help='Display detailed exception information')
        parser.add_argument('--log-level', dest='log_level', default='warning',
                            choices=['debug', 'info', 'warning', 'error', 'critical'],
                            help='''The logging level to use. Default: warning''')
        parser.add_argument('--json', action='store_true', default=False,
                            help='Respond with JSON')
        parser.add_argument('--long', action='store_true', default=False,
                            help='Display more information')
        parser.add_argument('--timeout', type=float, default=None,
                            help=f'''The timeout for each connect, write and read, in seconds. Default: ${TIMEOUT_ENV_VAR}, or {DEFAULT_TIMEOUT}''')
        parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                            help=f'''The device port, for addresses that do not include one. Default: {DEFAULT_PORT}''')
        parser.set_defaults(func=self.cmd_bare)

        subparsers = parser.add_subparsers(
                            title='Commands',
                            description='Valid commands',
                            help='Additional help available with "<command-name> -h"')


        # ======================= discover

        parser_discover = subparsers.add_parser('discover', description="Discover devices on the local network")
        parser_discover.add_argument('--timeout', dest='discover_timeout', type=float, default=DEFAULT_DISCOVERY_TIMEOUT,
                            help=f'''The amount of time to wait for responses, in seconds. Default: {DEFAULT_DISCOVERY_TIMEOUT}''')
        parser_discover.add_argument('--all-interfaces', dest='all_interfaces', action='store_true', default=False,
                            help='Probe the broadcast address of every local interface, rather than 255.255.255.255')
        parser_discover.add_argument('--broadcast-address', dest='broadcast_addresses', metavar='ADDRESS', action='append', default=None,
                            help='An address to send the probe to. May be repeated. Default: 255.255.255.255, or every interface with --all-interfaces')
        parser_discover.add_argument('--unframed', action='store_true', default=False,
                            help='Send the probe without a length prefix, as some firmware expects')
        parser_discover.set_defaults(func=self.cmd_discover)

        # ======================= status

        parser_status = subparsers.add_parser('status', description="Given device addresses, return info + status")
        parser_status.add_argument('addresses', metavar='ADDRESS', nargs='+',
                            help='A device address, as <host> or <host>:<port>')
        parser_status.set_defaults(func=self.cmd_status)

        # ======================= reboot

        parser_reboot = subparsers.add_parser('reboot', description="Reboot one or more devices")
        parser_reboot.add_argument('--delay', type=int, default=1,
                            help='Schedule the reboot (in seconds). Default: 1')
        parser_reboot.add_argument('addresses', metavar='ADDRESS', nargs='+',
                            help='A device address, as <host> or <host>:<port>')
        parser_reboot.set_defaults(func=self.cmd_reboot)

        # ======================= on

        parser_on = subparsers.add_parser('on', description="Switch one or more devices on")
        parser_on.add_argument('addresses', metavar='ADDRESS', nargs='+',
                            help='A device address, as <host> or <host>:<port>')
        parser_on.set_defaults(func=self.cmd_on)

        # ======================= off

        parser_off = subparsers.add_parser('off', description="Switch one or more devices off")
        parser_off.add_argument('addresses', metavar='ADDRESS', nargs='+',
                            help='A device address, as <host> or <host>:<port>')
        parser_off.set_defaults(func=self.cmd_off)

        # ======================= brightness

        parser_brightness = subparsers.add_parser('brightness', description="Set the brightness of one or more dimmable devices")
        parser_brightness.add_argument('level', metavar='LEVEL', type=int,
                            help='The brightness, as a percentage (0-100)')
        parser_brightness.add_argument('addresses', metavar='ADDRESS', nargs='+',
                            help='A device address, as <host> or <host>:<port>')
        parser_brightness.set_defaults(func=self.cmd_brightness)

        # ======================= version

        parser_version = subparsers.add_parser('version',
                                description='''Display version information.''')
        parser_version.set_defaults(func=self.cmd_version)

        # =========================================================

        try:
            args = parser.parse_args(self._argv)
        except ArgparseExitError as ex:
            return ex.exit_code
        traceback: bool = args.traceback
        self._provide_traceback = traceback

        try:
            logging.basicConfig(
                level=logging.getLevelName(args.log_level.upper()),
            )
            if args.timeout is None:
                args.timeout = self.get_default_timeout()
            self._args = args
            func: Callable[[], Awaitable[int]] = args.func
            logging.debug(f"Running command {func.__name__}, tb = {traceback}")
            rc = await func()
            logging.debug(f"Command {func.__name__} returned {rc}")
        except Exception as ex:
            if isinstance(ex, CmdExitError):
                rc = ex.exit_code
            else:
                rc = 1
            if rc != 0:
                if traceback:
                    raise
            print(f"tplink-smarthome: error: {ex}", file=sys.stderr)
        except BaseException as ex:
            print(f"tplink-smarthome: Unhandled exception: {ex}", file=sys.stderr)
            raise

        return rc

    def run(self) -> int:
        loop = asyncio.new_event_loop()
        try:
            asyncio.set_event_loop(loop)
            rc = loop.run_until_complete(self.arun())
        finally:
            loop.close()
        return rc

def run(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = CommandHandler(argv).run()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

async def arun(argv: Optional[Sequence[str]]=None) -> int:
    try:
        rc = await CommandHandler(argv).arun()
    except CmdExitError as ex:
        rc = ex.exit_code
    return rc

# allow running with "python3 -m", or as a standalone script
if __name__ == "__main__":
    sys.exit(run())
