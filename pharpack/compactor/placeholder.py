"""占位符替换压缩器"""

from typing import Dict, Optional

from .base import Compactor


class Placeholder(Compactor):
    """把内容中的占位符按顺序替换为配置值，适用于所有文件"""

    def __init__(self, placeholders: Optional[Dict[str, str]] = None):
        self.placeholders: Dict[str, str] = dict(placeholders or {})

    def compact(self, file: str, contents: str) -> str:
        for search, replace in self.placeholders.items():
            contents = contents.replace(search, replace)
        return contents

    def as_placeholder(self) -> 'Placeholder':
        return self
