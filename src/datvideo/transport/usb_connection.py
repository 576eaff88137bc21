"""USB HID link that carries an encoded frame stream.

Supports both ``hidapi`` (preferred) and ``pyusb`` backends. HID moves
fixed 64-byte reports, so the byte stream is cut into reports of the form::

    +--------+------------------+----------------+
    | Length |      Data        |    Padding     |
    | 1 byte |  0..63 bytes     |  zero to 64 B  |
    +--------+------------------+----------------+

Report boundaries carry no meaning. The receiving side concatenates the
data bytes and lets a ``FrameDecoder`` find the frames.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from ..protocol.decoder import DecodeResult, FrameDecoder
from ..protocol.framing import encode_frame

logger = logging.getLogger(__name__)

HID_REPORT_SIZE = 64
MAX_REPORT_DATA = HID_REPORT_SIZE - 1
HID_INTERFACE = 0
EP_IN = 0x81
EP_OUT = 0x01
READ_TIMEOUT_MS = 1000


@dataclass
class DeviceInfo:
    """Basic device identification from USB descriptors."""

    vendor_id: int = 0
    product_id: int = 0
    manufacturer: str = ""
    product: str = ""
    path: str = ""


def build_reports(data: bytes) -> list[bytes]:
    """Split ``data`` into length-prefixed, zero-padded 64-byte reports."""
    reports: list[bytes] = []
    for offset in range(0, len(data), MAX_REPORT_DATA):
        chunk = data[offset : offset + MAX_REPORT_DATA]
        reports.append(bytes([len(chunk)]) + chunk + b"\x00" * (MAX_REPORT_DATA - len(chunk)))
    return reports


def report_data(report: bytes) -> bytes:
    """Return the meaningful bytes of a received report."""
    if not report:
        return b""
    size = min(report[0], len(report) - 1, MAX_REPORT_DATA)
    return bytes(report[1 : 1 + size])


class USBConnection:
    """Manages a USB HID link to a device that relays the frame stream.

    Usage::

        conn = USBConnection(0x0483, 0x5750)
        conn.open()
        conn.send_frames(payloads)
        for result in conn.receive_payloads(FrameDecoder()):
            ...
        conn.close()
    """

    def __init__(
        self,
        vendor_id: int,
        product_id: int,
        interface: int = HID_INTERFACE,
    ) -> None:
        self._vendor_id = vendor_id
        self._product_id = product_id
        self._interface = interface
        self._device = None
        self._backend: str = ""
        self._connected = False
        self._device_info = DeviceInfo(vendor_id=vendor_id, product_id=product_id)

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def device_info(self) -> DeviceInfo:
        return self._device_info

    @property
    def backend(self) -> str:
        return self._backend

    def open(self) -> DeviceInfo:
        """Open the link, trying hidapi first, then pyusb.

        Raises:
            ConnectionError: If the device cannot be found or opened.
        """
        try:
            return self._open_hidapi()
        except Exception as e:
            logger.debug("hidapi backend failed: %s, trying pyusb", e)

        try:
            return self._open_pyusb()
        except Exception as e:
            raise ConnectionError(
                f"Could not open HID device "
                f"({self._vendor_id:#06x}:{self._product_id:#06x}). "
                f"Ensure the device is connected and you have permissions. "
                f"Last error: {e}"
            ) from e

    def _open_hidapi(self) -> DeviceInfo:
        import hid

        device = hid.device()
        device.open(self._vendor_id, self._product_id)
        device.set_nonblocking(False)

        self._device = device
        self._backend = "hidapi"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=device.get_manufacturer_string() or "",
            product=device.get_product_string() or "",
        )

        logger.info(
            "Connected via hidapi: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )
        return self._device_info

    def _open_pyusb(self) -> DeviceInfo:
        import usb.core
        import usb.util

        dev = usb.core.find(idVendor=self._vendor_id, idProduct=self._product_id)
        if dev is None:
            raise ConnectionError("Device not found via pyusb")

        if dev.is_kernel_driver_active(self._interface):
            dev.detach_kernel_driver(self._interface)

        usb.util.claim_interface(dev, self._interface)

        self._device = dev
        self._backend = "pyusb"
        self._connected = True
        self._device_info = DeviceInfo(
            vendor_id=self._vendor_id,
            product_id=self._product_id,
            manufacturer=usb.util.get_string(dev, dev.iManufacturer) or "",
            product=usb.util.get_string(dev, dev.iProduct) or "",
        )

        logger.info(
            "Connected via pyusb: %s %s",
            self._device_info.manufacturer,
            self._device_info.product,
        )
        return self._device_info

    def close(self) -> None:
        """Close the link."""
        if not self._connected:
            return

        try:
            if self._backend == "hidapi":
                self._device.close()
            elif self._backend == "pyusb":
                import usb.util
                usb.util.release_interface(self._device, self._interface)
        except Exception as e:
            logger.warning("Error closing device: %s", e)
        finally:
            self._device = None
            self._connected = False
            logger.info("Disconnected")

    def write(self, report: bytes) -> int:
        """Write one 64-byte HID report.

        Raises:
            ConnectionError: If not connected.
            ValueError: If the report is not 64 bytes.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")

        if len(report) != HID_REPORT_SIZE:
            raise ValueError(
                f"HID report must be {HID_REPORT_SIZE} bytes, got {len(report)}"
            )

        if self._backend == "hidapi":
            return self._device.write(report)
        elif self._backend == "pyusb":
            return self._device.write(EP_OUT, report, timeout=READ_TIMEOUT_MS)
        else:
            raise RuntimeError(f"Unknown backend: {self._backend}")

    def read(self, timeout_ms: int = READ_TIMEOUT_MS) -> bytes | None:
        """Read one 64-byte HID report, or None if the read timed out.

        Raises:
            ConnectionError: If not connected.
        """
        if not self._connected:
            raise ConnectionError("Not connected to device")

        try:
            if self._backend == "hidapi":
                data = self._device.read(HID_REPORT_SIZE, timeout_ms)
                if data:
                    return bytes(data)
                return None
            elif self._backend == "pyusb":
                data = self._device.read(EP_IN, HID_REPORT_SIZE, timeout=timeout_ms)
                return bytes(data)
        except Exception as e:
            logger.debug("Read error: %s", e)
        return None

    def send_stream(self, data: bytes) -> int:
        """Send an arbitrary byte string as a run of HID reports.

        Returns:
            Number of reports that were not fully written.
        """
        failures = 0
        for report in build_reports(data):
            written = self.write(report)
            if written is not None and written < 0:
                logger.error("Failed to write HID report: %d", written)
                failures += 1
        return failures

    def read_chunk(self, timeout_ms: int = READ_TIMEOUT_MS) -> bytes | None:
        """Read one report and return its data bytes, or None on timeout."""
        report = self.read(timeout_ms)
        if report is None:
            return None
        return report_data(report)

    def send_frames(self, payloads: Iterable[bytes]) -> int:
        """Encode each payload into a frame and send it.

        Returns:
            Number of frames sent.
        """
        count = 0
        for payload in payloads:
            self.send_stream(encode_frame(payload))
            count += 1
        return count

    def receive_payloads(
        self,
        decoder: FrameDecoder,
        timeout_ms: int = READ_TIMEOUT_MS,
        max_idle_reads: int = 3,
    ) -> Iterator[DecodeResult]:
        """Feed incoming report data through ``decoder`` and yield results.

        Stops after ``max_idle_reads`` consecutive reads time out.
        """
        idle = 0
        while idle < max_idle_reads:
            chunk = self.read_chunk(timeout_ms)
            if chunk is None:
                idle += 1
                continue
            idle = 0
            yield from decoder.feed_bytes(chunk)
