"""Test helpers: generated images and the payment key pair used by the app under test."""

from io import BytesIO

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from PIL import Image


def generate_key_pair() -> tuple[str, str]:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    private_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    public_pem = key.public_key().public_bytes(
        serialization.Encoding.PEM,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()
    return private_pem, public_pem


PRIVATE_KEY_PEM, PUBLIC_KEY_PEM = generate_key_pair()
ADMIN_KEY = "test-admin-key"
MERCHANT_ID = "000000000000010"


def make_image(
    width: int = 1600,
    height: int = 1200,
    color: tuple[int, int, int] = (30, 120, 200),
    fmt: str = "JPEG",
    exif=None,
) -> bytes:
    """Solid-colour test image encoded as ``fmt``."""
    image = Image.new("RGB", (width, height), color)
    buffer = BytesIO()
    if exif is not None:
        image.save(buffer, format=fmt, exif=exif)
    else:
        image.save(buffer, format=fmt)
    return buffer.getvalue()
