"""Git Smart HTTP protocol utilities"""

import re
from enum import Enum
from typing import List, Optional, Tuple, Union

from gitgate.core.exceptions import ProtocolViolationError


class GitService(str, Enum):
    """Git services supported by the smart HTTP protocol"""
    UPLOAD_PACK = "git-upload-pack"
    RECEIVE_PACK = "git-receive-pack"

    @property
    def subcommand(self) -> str:
        """Name of the git sub-command, e.g. ``upload-pack``"""
        return self.value[len("git-"):]


class GitContentType:
    """Git protocol content types"""

    @staticmethod
    def advertisement(service: GitService) -> str:
        return f"application/x-{service.value}-advertisement"

    @staticmethod
    def request(service: GitService) -> str:
        return f"application/x-{service.value}-request"

    @staticmethod
    def result(service: GitService) -> str:
        return f"application/x-{service.value}-result"


class PktLineParser:
    """Encoder/decoder for the Git packet-line format"""

    FLUSH_PKT = b"0000"
    MAX_PKT_LEN = 65520
    MAX_PKT_DATA_LEN = MAX_PKT_LEN - 4

    @staticmethod
    def encode_line(data: Union[str, bytes]) -> bytes:
        """Encode data as a pkt-line"""
        if isinstance(data, str):
            data = data.encode("utf-8")

        if len(data) > PktLineParser.MAX_PKT_DATA_LEN:
            raise ProtocolViolationError(
                f"Data too long for pkt-line: {len(data)} bytes"
            )

        # Length includes the 4-byte length prefix
        length = len(data) + 4
        return f"{length:04x}".encode("ascii") + data

    @staticmethod
    def encode_flush() -> bytes:
        return PktLineParser.FLUSH_PKT

    @staticmethod
    def encode_lines(lines: List[Union[str, bytes]]) -> bytes:
        """Encode multiple lines followed by a flush packet"""
        encoded = b"".join(PktLineParser.encode_line(line) for line in lines)
        return encoded + PktLineParser.encode_flush()

    @staticmethod
    def encode_ref_advertisement(service: Union[GitService, str], advertisement: bytes) -> bytes:
        """
        Build the smart HTTP info/refs body.

        The ``# service=`` announcement and a flush packet are prepended to the
        output of ``git <service> --advertise-refs``, which is already framed
        and is passed through untouched.
        """
        name = service.value if isinstance(service, GitService) else service
        return PktLineParser.encode_lines([f"# service={name}\n"]) + advertisement

    @staticmethod
    def decode_line(data: bytes) -> Tuple[Optional[bytes], int]:
        """
        Decode a single pkt-line from data.
        Returns (line_data, bytes_consumed); line_data is None for a flush packet.
        """
        if len(data) < 4:
            raise ProtocolViolationError("Insufficient data for pkt-line length")

        length_hex = data[:4]

        if length_hex == PktLineParser.FLUSH_PKT:
            return None, 4

        try:
            length = int(length_hex, 16)
        except ValueError:
            raise ProtocolViolationError(f"Invalid pkt-line length: {length_hex!r}")

        if length < 4:
            raise ProtocolViolationError(f"Invalid pkt-line length: {length}")

        if length > PktLineParser.MAX_PKT_LEN:
            raise ProtocolViolationError(f"pkt-line too long: {length}")

        if len(data) < length:
            raise ProtocolViolationError(
                f"Insufficient data for pkt-line: need {length}, have {len(data)}"
            )

        return data[4:length], length

    @staticmethod
    def decode_lines(data: bytes) -> List[Optional[bytes]]:
        """Decode pkt-lines up to and including the first flush packet"""
        lines: List[Optional[bytes]] = []
        offset = 0

        while offset < len(data):
            line, consumed = PktLineParser.decode_line(data[offset:])
            lines.append(line)
            offset += consumed

            if line is None:
                break

        return lines


class GitProtocolValidator:
    """Validator for Git protocol elements"""

    # SHA-1 or SHA-256 object ids
    OBJECT_ID_PATTERN = re.compile(r"^(?:[0-9a-f]{40}|[0-9a-f]{64})$")

    @classmethod
    def validate_service(cls, service: Optional[str]) -> GitService:
        if not service:
            raise ProtocolViolationError("Missing Git service")
        try:
            return GitService(service)
        except ValueError:
            raise ProtocolViolationError(
                f"Invalid Git service: {service}", details={"service": service}
            )

    @classmethod
    def validate_object_id(cls, obj_id: str) -> bool:
        if not obj_id:
            return False
        return bool(cls.OBJECT_ID_PATTERN.match(obj_id))

    @staticmethod
    def is_zero_id(obj_id: str) -> bool:
        """True for the all-zero id git uses for ref creation/deletion"""
        return bool(obj_id) and set(obj_id) == {"0"}
