#!/usr/bin/env python3

import json
import logging
import yaml

from pathlib import Path
from Crypto.Cipher import AES
from Crypto.Hash import SHA1
from Crypto.Protocol.KDF import PBKDF2

from es3.encoding import convert_dotnet_json
from es3.encoding import locate_json
from es3.encoding import maybe_decompress
from es3.errors import CryptoError
from es3.errors import JsonParseError
from es3.errors import SaveReadError


logger = logging.getLogger(__name__)


# Password the game uses for every ES3 save. Existing saves only decrypt
# with this exact string.
DEFAULT_PASSWORD = "Why would you want to cheat?... :o It's no fun. :') :'D"

BLOCK_SIZE = AES.block_size
PBKDF2_ITERATIONS = 100
KEY_LENGTH = 16


def derive_key(
    password: bytes | str,
    salt: bytes,
    iterations: int = PBKDF2_ITERATIONS,
    key_length: int = KEY_LENGTH,
) -> bytes:
    """PBKDF2 with HMAC-SHA1, the IV of the save doubles as the salt."""

    if isinstance(password, str):
        password = password.encode("utf-8")

    return PBKDF2(
        password,
        salt,
        dkLen=key_length,
        count=iterations,
        hmac_hash_module=SHA1,
    )


def decrypt_block_cipher(ciphertext: bytes, key: bytes, iv: bytes) -> bytes:
    if not ciphertext or len(ciphertext) % BLOCK_SIZE != 0:
        raise CryptoError(
            f"ciphertext size {len(ciphertext)} not a positive multiple "
            f"of {BLOCK_SIZE}"
        )

    return AES.new(key, AES.MODE_CBC, iv).decrypt(ciphertext)


def unpad_pkcs7(data: bytes, strict: bool = False) -> bytes:
    """ Remove PKCS7 padding

    Only the range of the final byte is checked unless strict is set, which
    also requires every padding byte to hold the padding length. Saves in
    the wild are only known to satisfy the lenient check.

    """

    if not data:
        raise CryptoError("invalid padding: no data")

    padding_len = data[-1]

    if padding_len == 0 or padding_len > BLOCK_SIZE:
        raise CryptoError(f"invalid padding length {padding_len}")

    if strict and data[-padding_len:] != bytes((padding_len,)) * padding_len:
        raise CryptoError("invalid padding bytes")

    return data[:-padding_len]


def decrypt_es3(
    blob: bytes,
    password: bytes | str = DEFAULT_PASSWORD,
    strict_padding: bool = False,
) -> bytes:
    """ Decrypts a whole ES3 blob and inflates it if it was gzipped

    Layout is a 16 byte IV followed by AES-128-CBC ciphertext. The key is
    derived from the password with the IV as salt.

    """

    if len(blob) < BLOCK_SIZE:
        raise CryptoError("encrypted data too short")

    iv = blob[:BLOCK_SIZE]
    ciphertext = blob[BLOCK_SIZE:]

    logger.debug("iv=%s ciphertext=%d bytes", iv.hex(), len(ciphertext))

    key = derive_key(password, iv)
    padded = decrypt_block_cipher(ciphertext, key, iv)
    body = unpad_pkcs7(padded, strict=strict_padding)

    return maybe_decompress(body)


def read_es3(es3_path: Path) -> bytes:
    try:
        return Path(es3_path).read_bytes()
    except OSError as e:
        raise SaveReadError(f"error reading file: {e}") from e


def decrypt_es3_to_json(
    es3_path: Path,
    password: bytes | str = DEFAULT_PASSWORD,
    strict_padding: bool = False,
    keep_unknown_wrappers: bool = False,
) -> str:
    blob = read_es3(es3_path)
    decrypted = decrypt_es3(blob, password, strict_padding=strict_padding)

    json_data = locate_json(decrypted)

    if not json_data:
        raise JsonParseError("no JSON data found in file")

    converted = convert_dotnet_json(
        json_data,
        keep_unknown_wrappers=keep_unknown_wrappers,
    )

    return converted.decode("utf-8")


def decrypt_es3_to_yaml(
    es3_path: Path,
    password: bytes | str = DEFAULT_PASSWORD,
    strict_padding: bool = False,
    keep_unknown_wrappers: bool = False,
) -> bytes:
    document = json.loads(
        decrypt_es3_to_json(
            es3_path,
            password,
            strict_padding=strict_padding,
            keep_unknown_wrappers=keep_unknown_wrappers,
        )
    )

    return yaml.dump(
        document,
        default_flow_style=False,
        allow_unicode=True,
        sort_keys=False,
    ).encode("utf-8")


def encrypt_json_to_es3(
    json_path: Path,
    password: bytes | str = DEFAULT_PASSWORD,
) -> bytes:
    raise NotImplementedError("saving ES3 files is not implemented yet")
