import gzip
import hashlib
import json
import os

import pytest
import yaml
from Crypto.Cipher import AES

import es3.crypto
from es3.crypto import (
    DEFAULT_PASSWORD,
    decrypt_block_cipher,
    decrypt_es3,
    decrypt_es3_to_json,
    decrypt_es3_to_yaml,
    derive_key,
    encrypt_json_to_es3,
    unpad_pkcs7,
)
from es3.errors import (
    CryptoError,
    DecompressionError,
    JsonParseError,
    SaveReadError,
)


@pytest.mark.parametrize(
    "iterations,expected",
    [
        # RFC 6070, truncated to 16 bytes
        (1, "0c60c80f961f0e71f3a9b524af601206"),
        (2, "ea6c014dc72d6f8ccd1ed92ace1d41f0"),
        (4096, "4b007901b765489abead49d926f721d0"),
    ],
)
def test_derive_key_matches_reference_vectors(iterations, expected):
    assert derive_key(b"password", b"salt", iterations).hex() == expected


def test_derive_key_matches_hashlib_with_save_parameters():
    salt = bytes(range(16))
    expected = hashlib.pbkdf2_hmac(
        "sha1", DEFAULT_PASSWORD.encode(), salt, 100, 16
    )

    key = derive_key(DEFAULT_PASSWORD, salt)

    assert len(key) == 16
    assert key == expected
    assert derive_key(DEFAULT_PASSWORD.encode(), salt) == key


def test_derive_key_supports_multi_block_lengths():
    expected = hashlib.pbkdf2_hmac("sha1", b"pw", b"salt", 100, 48)
    assert derive_key(b"pw", b"salt", 100, 48) == expected


@pytest.mark.parametrize("length", [0, 1, 15, 16, 17, 100, 4096])
def test_decrypt_round_trip(make_es3, length):
    plaintext = bytes((i * 7) % 256 for i in range(length))
    blob = make_es3(plaintext, password=b"secret", iv=os.urandom(16))
    assert decrypt_es3(blob, b"secret") == plaintext


def test_decrypt_uses_default_password(make_es3):
    assert decrypt_es3(make_es3(b'{"a":1}')) == b'{"a":1}'


def test_decrypt_inflates_gzip_payload(make_es3):
    blob = make_es3(gzip.compress(b'{"a":1}'))
    assert decrypt_es3(blob) == b'{"a":1}'


def test_decrypt_reports_corrupt_gzip(make_es3):
    with pytest.raises(DecompressionError):
        decrypt_es3(make_es3(b"\x1f\x8b\x08garbage"))


def test_short_blob_rejected_before_any_cipher_work(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError("key derivation must not run")

    monkeypatch.setattr(es3.crypto, "derive_key", fail)

    for size in (0, 1, 15):
        with pytest.raises(CryptoError):
            decrypt_es3(b"\x00" * size)


@pytest.mark.parametrize("size", [0, 1, 15, 17, 33])
def test_block_cipher_rejects_partial_blocks(size):
    with pytest.raises(CryptoError):
        decrypt_block_cipher(b"\x00" * size, b"k" * 16, b"i" * 16)


def test_iv_only_blob_has_no_ciphertext():
    with pytest.raises(CryptoError):
        decrypt_es3(b"\x00" * 16)


@pytest.mark.parametrize("padding", [0, 17, 255])
def test_unpad_rejects_out_of_range_length(padding):
    with pytest.raises(CryptoError):
        unpad_pkcs7(b"A" * 15 + bytes((padding,)))


def test_unpad_accepts_boundary_lengths():
    assert unpad_pkcs7(b"A" * 15 + b"\x01") == b"A" * 15
    assert unpad_pkcs7(b"\x10" * 16) == b""
    assert unpad_pkcs7(b"A" * 16 + b"\x10" * 16) == b"A" * 16


def test_unpad_is_lenient_about_padding_content_by_default():
    data = b"A" * 14 + b"\x07\x02"
    assert unpad_pkcs7(data) == b"A" * 14

    with pytest.raises(CryptoError):
        unpad_pkcs7(data, strict=True)

    assert unpad_pkcs7(b"A" * 14 + b"\x02\x02", strict=True) == b"A" * 14


def test_unpad_rejects_empty_buffer():
    with pytest.raises(CryptoError):
        unpad_pkcs7(b"")


def test_decrypt_rejects_bad_padding_after_cipher():
    iv = bytes(16)
    key = derive_key(DEFAULT_PASSWORD, iv)
    plaintext = b"A" * 15 + b"\x11"
    blob = iv + AES.new(key, AES.MODE_CBC, iv).encrypt(plaintext)

    with pytest.raises(CryptoError):
        decrypt_es3(blob)


def test_wrong_password_does_not_yield_plaintext(make_es3):
    blob = make_es3(b'{"a":1}', password=b"right", iv=bytes(16))

    try:
        result = decrypt_es3(blob, b"wrong")
    except (CryptoError, DecompressionError):
        return

    assert result != b'{"a":1}'


def test_decrypt_to_json_normalizes_save(write_es3, dotnet_save):
    path = write_es3(b"\x02\x00\x00\x00ES3" + dotnet_save)

    result = json.loads(decrypt_es3_to_json(path))

    assert result["teamName"] == "R.E.P.O."
    run_stats = result["dictionaryOfDictionaries"]["runStats"]
    assert run_stats == {"level": 3, "currency": 120}
    assert result["unknown"] is None


def test_decrypt_to_json_from_compressed_save(write_es3, dotnet_save):
    path = write_es3(dotnet_save, compress=True)
    assert json.loads(decrypt_es3_to_json(path))["timePlayed"] == 1234.5


def test_decrypt_to_json_can_keep_unknown_wrappers(write_es3, dotnet_save):
    path = write_es3(dotnet_save)
    result = json.loads(decrypt_es3_to_json(path, keep_unknown_wrappers=True))
    assert result["unknown"] == {"__type": "Some.Custom.Type"}


def test_decrypt_to_json_with_custom_password(write_es3):
    path = write_es3(
        b'{"a":{"__type":"System.Int32","value":7}}',
        password="hunter2",
    )
    assert decrypt_es3_to_json(path, "hunter2") == '{"a":7}'


def test_decrypt_to_json_requires_json_data(write_es3):
    with pytest.raises(JsonParseError):
        decrypt_es3_to_json(write_es3(b""))


def test_decrypt_to_json_reports_unreadable_file(tmp_path):
    with pytest.raises(SaveReadError) as excinfo:
        decrypt_es3_to_json(tmp_path / "missing.es3")

    assert isinstance(excinfo.value, OSError)


def test_decrypt_to_yaml_keeps_key_order(write_es3, dotnet_save):
    path = write_es3(dotnet_save)

    document = yaml.safe_load(decrypt_es3_to_yaml(path).decode("utf-8"))

    assert list(document) == [
        "dictionaryOfDictionaries",
        "teamName",
        "timePlayed",
        "dateAndTime",
        "unknown",
    ]
    health = document["dictionaryOfDictionaries"]["playerHealth"]
    assert health["76561198000000002"] == 75


def test_encrypt_is_not_implemented(tmp_path):
    path = tmp_path / "save.json"
    path.write_text("{}", encoding="utf-8")

    with pytest.raises(NotImplementedError):
        encrypt_json_to_es3(path)
