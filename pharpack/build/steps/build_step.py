"""
编译步骤基类模块

定义编译步骤的抽象接口。
"""

from abc import ABC, abstractmethod

from ..build_context import BuildContext


class BuildStep(ABC):
    """编译步骤抽象基类"""

    def __init__(self, name: str, description: str):
        self.name = name
        self.description = description

    @abstractmethod
    def execute(self, context: BuildContext) -> None:
        """执行编译步骤"""
        pass

    @abstractmethod
    def get_progress_range(self) -> tuple[int, int]:
        """获取此步骤的进度范围 (start_percent, end_percent)"""
        pass