"""
azrecon/cache/codec.py - 캐시 페이로드 직렬화/압축

값은 msgpack으로 직렬화되고, 요청 시 gzip으로 압축됩니다.
CacheEntry.compressed 플래그가 어떤 경로를 사용했는지 기록하므로
조회 시 투명하게 해제할 수 있습니다.

Contract:
    decompress(compress(v)) == v  (msgpack 직렬화 가능한 모든 값)
    gzip 해제 결과는 압축 전 직렬화 바이트와 동일
"""

from __future__ import annotations

import gzip
import zlib
from typing import Any

import msgpack

from azrecon.exceptions import SerializationError

# gzip 압축 레벨 (1=빠름, 9=최대 압축)
DEFAULT_COMPRESSION_LEVEL = 6


class PayloadCodec:
    """msgpack + gzip 페이로드 코덱

    Args:
        compression_level: gzip 압축 레벨 (1~9)
    """

    def __init__(self, compression_level: int = DEFAULT_COMPRESSION_LEVEL):
        if not 1 <= compression_level <= 9:
            raise ValueError(f"compression_level must be 1..9, got {compression_level}")
        self.compression_level = compression_level

    def serialize(self, value: Any) -> bytes:
        """값을 msgpack 바이트로 직렬화

        Raises:
            SerializationError: 직렬화할 수 없는 값
        """
        try:
            return msgpack.packb(value, use_bin_type=True)
        except (TypeError, ValueError, OverflowError) as e:
            raise SerializationError(f"직렬화 실패 ({type(value).__name__})", cause=e) from e

    def deserialize(self, data: bytes) -> Any:
        """msgpack 바이트를 값으로 역직렬화

        Raises:
            SerializationError: 손상된 페이로드
        """
        try:
            return msgpack.unpackb(data, raw=False, strict_map_key=False)
        except (TypeError, ValueError) as e:
            raise SerializationError("역직렬화 실패", cause=e) from e

    def compress_bytes(self, data: bytes) -> bytes:
        """직렬화된 바이트를 gzip 압축 (mtime=0으로 결정적 출력)"""
        return gzip.compress(data, compresslevel=self.compression_level, mtime=0)

    def decompress_bytes(self, data: bytes) -> bytes:
        """gzip 압축 해제

        Raises:
            SerializationError: gzip 형식이 아니거나 손상된 경우
        """
        try:
            return gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise SerializationError("압축 해제 실패", cause=e) from e

    def compress(self, value: Any) -> bytes:
        """값을 직렬화 후 압축"""
        return self.compress_bytes(self.serialize(value))

    def decompress(self, data: bytes) -> Any:
        """압축 해제 후 역직렬화"""
        return self.deserialize(self.decompress_bytes(data))

    def encode(self, value: Any, compress: bool = False) -> tuple[bytes, bool]:
        """CacheStore 저장용 인코딩

        Returns:
            (페이로드 바이트, 압축 여부)
        """
        if compress:
            return self.compress(value), True
        return self.serialize(value), False

    def decode(self, payload: bytes, compressed: bool) -> Any:
        """CacheStore 조회용 디코딩"""
        if compressed:
            return self.decompress(payload)
        return self.deserialize(payload)


_default_codec = PayloadCodec()


def compress(value: Any) -> bytes:
    """기본 코덱으로 값 압축"""
    return _default_codec.compress(value)


def decompress(data: bytes) -> Any:
    """기본 코덱으로 값 복원"""
    return _default_codec.decompress(data)
