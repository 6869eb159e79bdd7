"""
结构化消息解码

解码 UnaShield 传感器发送的打包二进制消息，例如 920e06272731741db051e600：
每个字段占 4 字节，前 2 字节是字段名（3 个 5 位编码的字符），
后 2 字节是小端序的数值乘以 10。

字符编码：0 为结束符，1-26 为 a-z，27-36 为 0-9。
"""
from typing import Dict, Iterable, Optional, Union

FIRST_LETTER = 1
FIRST_DIGIT = 27
FIELD_HEX_LENGTH = 8


def decode_letter(code: int) -> str:
    """把 5 位编码转换为字符，0 或非法编码返回空字符串"""
    if FIRST_LETTER <= code < FIRST_DIGIT:
        return chr(code - FIRST_LETTER + ord('a'))
    if FIRST_DIGIT <= code < FIRST_DIGIT + 10:
        return chr(code - FIRST_DIGIT + ord('0'))
    return ""


def decode_text(encoded: int) -> str:
    """解码 3 个打包的 5 位字符，低位是最后一个字符"""
    letters = []
    for _ in range(3):
        letters.append(decode_letter(encoded & 31))
        encoded >>= 5
    return "".join(reversed(letters))


def _decode_word(hex_word: str) -> int:
    """2 字节小端序：'0627' -> 0x2706"""
    return int(hex_word[2:4] + hex_word[0:2], 16)


def decode_message(
    data: Optional[Union[str, bytes]],
    text_fields: Optional[Iterable[str]] = None
) -> Dict[str, Union[float, str]]:
    """
    解码结构化消息。

    Args:
        data: 十六进制字符串或原始字节
        text_fields: 值需要按文本解码的字段名，例如 ['d1', 'd2']

    Returns:
        字段名到数值（或文本）的映射，例如 {'ctr': 999.0, 'lig': 754.0, 'tmp': 23.0}

    Raises:
        ValueError: 数据不是合法的十六进制，或长度不是 4 字节的整数倍
    """
    if not data:
        return {}
    if isinstance(data, (bytes, bytearray)):
        data = data.hex()
    if len(data) % FIELD_HEX_LENGTH:
        raise ValueError(f"Structured message length must be a multiple of 4 bytes: {data}")

    text_fields = set(text_fields or ())
    result: Dict[str, Union[float, str]] = {}
    for i in range(0, len(data), FIELD_HEX_LENGTH):
        name = decode_text(_decode_word(data[i:i + 4]))
        value = _decode_word(data[i + 4:i + 8])
        if name in text_fields:
            result[name] = decode_text(value)
        else:
            result[name] = value / 10.0
    return result
