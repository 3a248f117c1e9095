"""JSON 压缩器"""

import json
from typing import Iterable

from .base import FileExtensionCompactor


class Json(FileExtensionCompactor):
    """去掉 JSON 中无意义的空白；无法解析的内容原样返回"""

    def __init__(self, extensions: Iterable[str] = ('json', 'lock')):
        super().__init__(extensions)

    def compact_content(self, contents: str) -> str:
        try:
            decoded = json.loads(contents)
        except ValueError:
            return contents

        return json.dumps(decoded, ensure_ascii=False, separators=(',', ':'))
