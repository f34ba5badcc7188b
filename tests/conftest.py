import gzip
import os

import pytest
from Crypto.Cipher import AES
from Crypto.Util.Padding import pad

from es3.crypto import DEFAULT_PASSWORD, derive_key


def encrypt_es3(plaintext: bytes, password=DEFAULT_PASSWORD, iv=None) -> bytes:
    # Writer side of the format, only needed to build fixtures
    iv = iv if iv is not None else os.urandom(16)
    key = derive_key(password, iv)
    cipher = AES.new(key, AES.MODE_CBC, iv)
    return iv + cipher.encrypt(pad(plaintext, 16, style="pkcs7"))


@pytest.fixture
def make_es3():
    return encrypt_es3


@pytest.fixture
def write_es3(tmp_path):
    def _write(
        plaintext: bytes,
        name: str = "SaveFile.es3",
        compress: bool = False,
        **kwargs,
    ):
        if compress:
            plaintext = gzip.compress(plaintext)
        path = tmp_path / name
        path.write_bytes(encrypt_es3(plaintext, **kwargs))
        return path

    return _write


@pytest.fixture
def dotnet_save() -> bytes:
    return (
        b'{\r\n'
        b'"dictionaryOfDictionaries":{"__type":'
        b'"System.Collections.Generic.Dictionary`2[[System.String],'
        b'[System.Collections.Generic.Dictionary`2'
        b'[[System.String],[System.Int32]]]]",'
        b'"value":{"runStats":{"level":3,"currency":120,},'
        b'"playerHealth":{"76561198000000001":100,"76561198000000002":75},'
        b'"playerUpgradeHealth":{"76561198000000001":2},'
        b'"item":{"Item Cart Medium":1,"Item Drone Battery":2},'
        b'"itemsPurchased":{"Item Drone Battery":2},'
        b'"itemsPurchasedTotal":{"Item Drone Battery":3},'
        b'"itemStatBattery":{"Item Drone Battery/1":100,'
        b'"Item Drone Battery/2":40}}},\r\n'
        b'"teamName":{"__type":"System.String","value":"R.E.P.O."},\r\n'
        b'"timePlayed":{"__type":"System.Single","value":1234.5},\r\n'
        b'"dateAndTime":{"__type":"System.String","value":"2025-03-01"},\r\n'
        b'"unknown":{"__type":"Some.Custom.Type"}\r\n'
        b'}\r\n'
    )
