import io
import json
import logging
import math

from fastavro import parse_schema, schemaless_reader, schemaless_writer

from config import DEFAULT_SCHEMA_FILE
from errors import DecodeError, SchemaViolation

logger = logging.getLogger(__name__)

CONTENT_TYPE = "application/avro"


def load_schema(path=DEFAULT_SCHEMA_FILE):
    with open(path, "r") as f:
        return parse_schema(json.load(f))


def validate_order(order):
    """Check an order mapping against the record definition.

    Returns a list of problems, empty when the order is valid.
    """
    if not isinstance(order, dict):
        return [f"order must be a mapping, got {type(order).__name__}"]

    problems = []
    for field in ("orderId", "product", "price"):
        if field not in order:
            problems.append(f"missing field '{field}'")

    order_id = order.get("orderId")
    if "orderId" in order:
        if not isinstance(order_id, str):
            problems.append("orderId must be a string")
        elif not order_id:
            problems.append("orderId must not be empty")

    if "product" in order and not isinstance(order.get("product"), str):
        problems.append("product must be a string")

    if "price" in order:
        price = order.get("price")
        if isinstance(price, bool) or not isinstance(price, (int, float)):
            problems.append("price must be a number")
        elif not math.isfinite(price):
            problems.append("price must be finite")
        elif price < 0:
            problems.append("price must not be negative")

    return problems


class OrderCodec:
    def __init__(self, schema_file=DEFAULT_SCHEMA_FILE, schema=None):
        self.schema = schema if schema is not None else load_schema(schema_file)

    def encode(self, order):
        problems = validate_order(order)
        if problems:
            raise SchemaViolation("Invalid order: " + "; ".join(problems))

        record = {
            "orderId": order["orderId"],
            "product": order["product"],
            "price": float(order["price"]),
        }
        buf = io.BytesIO()
        schemaless_writer(buf, self.schema, record)
        return buf.getvalue()

    def decode(self, data):
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise DecodeError(f"Expected bytes, got {type(data).__name__}")

        raw = bytes(data)
        if not raw:
            raise DecodeError("Empty order payload")
        buf = io.BytesIO(raw)
        try:
            order = schemaless_reader(buf, self.schema)
        except Exception as e:
            raise DecodeError(f"Malformed order payload ({len(raw)} bytes): {e}") from e

        if buf.tell() != len(raw):
            raise DecodeError(
                f"Trailing bytes after order record: read {buf.tell()} of {len(raw)}"
            )

        problems = validate_order(order)
        if problems:
            raise DecodeError("Decoded order is invalid: " + "; ".join(problems))

        return order


_default_codec = None


def _codec():
    global _default_codec
    if _default_codec is None:
        _default_codec = OrderCodec()
    return _default_codec


def encode(order):
    return _codec().encode(order)


def decode(data):
    return _codec().decode(data)
