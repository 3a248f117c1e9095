"""
编译管道单元测试

测试编译管道、编译步骤、编译上下文以及完整的编译流程。
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from pharpack.build import Builder
from pharpack.build.build_context import BuildContext, BuildError
from pharpack.build.build_pipeline import BuildPipeline
from pharpack.build.steps.build_step import BuildStep
from pharpack.config.schema import CompressionAlgorithm, PharpackConfig
from pharpack.phar import Phar


class MockBuildStep(BuildStep):
    """模拟编译步骤"""

    def __init__(self, name="MockStep", description="Mock step", progress_range=(0, 10)):
        super().__init__(name, description)
        self._progress_range = progress_range
        self.execute_called = False
        self.execute_context = None

    def get_progress_range(self):
        return self._progress_range

    def execute(self, context):
        self.execute_called = True
        self.execute_context = context
        context.build_stats['mock_processed'] = True


def _project(root: Path) -> Path:
    """创建一个最小的 PHP 项目"""
    (root / "src").mkdir()
    (root / "index.php").write_text(
        "#!/usr/bin/env php\n<?php\n// entry\nrequire __DIR__ . '/src/App.php';\n",
        encoding="utf-8",
    )
    (root / "src" / "App.php").write_text(
        "<?php\n/** docblock */\nclass App { const VERSION = '@version@'; }\n",
        encoding="utf-8",
    )
    (root / "README.md").write_text("# App\n", encoding="utf-8")
    return root


class TestBuildStep:
    """BuildStep 基类测试"""

    def test_build_step_interface(self):
        """测试编译步骤接口"""
        step = MockBuildStep()

        assert step.name == "MockStep"
        assert step.description == "Mock step"
        assert step.get_progress_range() == (0, 10)
        assert not step.execute_called

    def test_build_step_execute(self):
        """测试编译步骤执行"""
        step = MockBuildStep()
        context = MagicMock()

        step.execute(context)

        assert step.execute_called
        assert step.execute_context == context


class TestBuildContext:
    """BuildContext 测试"""

    def test_init(self):
        """测试初始化"""
        config = MagicMock()
        output_path = Path("app.phar")

        context = BuildContext(config, output_path)

        assert context.config == config
        assert context.output_path == output_path
        assert context.progress_callback is None
        assert context.box is None
        for key in ('start_time', 'end_time', 'total_files', 'total_size', 'output_size', 'compression', 'signature'):
            assert key in context.build_stats

    def test_report_progress(self):
        """测试进度回调"""
        callback = MagicMock()
        context = BuildContext(MagicMock(), Path("app.phar"), progress_callback=callback)

        context.report_progress("压缩", 80, "进行中")

        callback.assert_called_once_with("压缩", 80, 100, "进行中")


class TestBuildPipeline:
    """BuildPipeline 测试"""

    def test_default_steps(self):
        """测试默认步骤"""
        pipeline = BuildPipeline()

        assert [step.name for step in pipeline.get_steps()] == [
            "prepare", "collect", "add_files", "stub", "commit", "compress", "sign", "publish",
        ]

    def test_add_step_with_position(self):
        """测试在指定位置添加步骤"""
        pipeline = BuildPipeline()

        new_step = MockBuildStep("NewStep")
        pipeline.add_step(new_step, position=0)

        assert pipeline.get_steps()[0] == new_step

    def test_remove_step(self):
        """测试移除步骤"""
        pipeline = BuildPipeline()
        initial_count = len(pipeline.get_steps())

        pipeline.add_step(MockBuildStep("ToRemove"))
        pipeline.remove_step("ToRemove")
        pipeline.remove_step("NonExistent")

        assert len(pipeline.get_steps()) == initial_count

    def test_get_steps_returns_copy(self):
        """测试 get_steps 返回副本"""
        pipeline = BuildPipeline()

        assert pipeline.get_steps() is not pipeline.get_steps()

    def test_validate_pipeline_valid(self):
        """测试验证有效管道"""
        assert BuildPipeline().validate_pipeline() == []

    def test_validate_pipeline_empty(self):
        """测试验证空管道"""
        pipeline = BuildPipeline()
        for step in pipeline.get_steps():
            pipeline.remove_step(step.name)

        errors = pipeline.validate_pipeline()

        assert "编译管道中没有步骤" in errors[0]

    def test_validate_pipeline_invalid_progress_ranges(self):
        """测试验证无效进度范围"""
        pipeline = BuildPipeline()
        pipeline.add_step(MockBuildStep("Invalid", progress_range=(100, 90)))

        errors = pipeline.validate_pipeline()

        assert any("进度范围无效" in error for error in errors)

    def test_validate_pipeline_non_continuous_progress(self):
        """测试验证不连续进度范围"""
        pipeline = BuildPipeline()
        pipeline.add_step(MockBuildStep("Discontinuous", progress_range=(5, 15)), position=0)

        errors = pipeline.validate_pipeline()

        assert any("进度范围不连续" in error for error in errors)

    def test_validate_pipeline_not_ending_at_100(self):
        """测试验证未以100结束的管道"""
        pipeline = BuildPipeline()
        for step in pipeline.get_steps():
            pipeline.remove_step(step.name)
        pipeline.add_step(MockBuildStep("Short", progress_range=(0, 50)))

        errors = pipeline.validate_pipeline()

        assert any("不是100%" in error for error in errors)

    def test_execute_runs_all_steps(self, tmp_path):
        """测试依次执行所有步骤"""
        pipeline = BuildPipeline()
        for step in pipeline.get_steps():
            pipeline.remove_step(step.name)
        steps = [MockBuildStep("a", progress_range=(0, 50)), MockBuildStep("b", progress_range=(50, 100))]
        for step in steps:
            pipeline.add_step(step)

        context = pipeline.execute(PharpackConfig(base_path=tmp_path), tmp_path / "app.phar", parallel=True)

        assert all(step.execute_context is context for step in steps)
        assert context.build_stats['mock_processed']
        assert context.build_stats['end_time'] >= context.build_stats['start_time']
        assert context.parallel

    def test_execute_respects_config_parallel(self, tmp_path):
        """测试配置关闭并行时不并行"""
        pipeline = BuildPipeline()
        for step in pipeline.get_steps():
            pipeline.remove_step(step.name)
        pipeline.add_step(MockBuildStep("a", progress_range=(0, 100)))

        context = pipeline.execute(PharpackConfig(base_path=tmp_path, parallel=False), tmp_path / "app.phar")

        assert not context.parallel

    def test_execute_wraps_unexpected_errors(self, tmp_path):
        """测试非 BuildError 异常被包装"""
        pipeline = BuildPipeline()
        for step in pipeline.get_steps():
            pipeline.remove_step(step.name)
        failing = MockBuildStep("fail", progress_range=(0, 100))
        failing.execute = MagicMock(side_effect=RuntimeError("boom"))
        pipeline.add_step(failing)

        with pytest.raises(BuildError) as exc_info:
            pipeline.execute(PharpackConfig(base_path=tmp_path), tmp_path / "app.phar")

        assert "boom" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class TestBuilder:
    """完整编译流程测试"""

    def test_build(self, tmp_path):
        """测试编译出可以重新打开的 PHAR"""
        project = _project(tmp_path)
        config = PharpackConfig(
            base_path=project,
            compactors=["php"],
            replacements={"values": {"@version@": "1.0.0"}},
            compression="gz",
            metadata={"name": "app"},
            chmod="0755",
        )
        progress = []

        result = Builder().build(config, progress_callback=lambda step, percent, total, msg: progress.append(percent))

        assert result.success, result.error
        assert result.output_path == project / "index.phar"
        assert result.file_count == 3
        assert result.compression == "gz"
        assert result.signature["hash_type"] == "SHA-1"
        assert result.output_size == (project / "index.phar").stat().st_size
        assert not (project / "index.phar.tmp").exists()
        assert (project / "index.phar").stat().st_mode & 0o777 == 0o755
        assert progress == sorted(progress)
        assert progress[-1] == 100

        phar = Phar(project / "index.phar")
        assert sorted(phar.names()) == ["README.md", "index.php", "src/App.php"]
        assert phar.get_metadata() == {"name": "app"}
        assert phar.get_alias() == config.get_alias()
        assert phar.get_entry("index.php").compression == CompressionAlgorithm.GZ

        stub = phar.get_stub()
        assert stub.startswith("#!/usr/bin/env php\n<?php\n")
        assert f"require 'phar://{config.get_alias()}/index.php';" in stub

        index = phar.get_entry("index.php").contents.decode("utf-8")
        assert not index.startswith("#!")
        assert "// entry" not in index

        app = phar.get_entry("src/App.php").contents.decode("utf-8")
        assert "'1.0.0'" in app
        assert "docblock" not in app

    def test_output_override(self, tmp_path):
        """测试覆盖输出路径"""
        project = _project(tmp_path)
        config = PharpackConfig(base_path=project)

        result = Builder().build(config, output_path=project / "dist" / "tool.phar", parallel=False)

        assert result.success, result.error
        assert (project / "dist" / "tool.phar").is_file()
        assert "dist/tool.phar" not in Phar(project / "dist" / "tool.phar").names()

    def test_dev_mode_skips_compression(self, tmp_path):
        """测试开发模式跳过压缩"""
        project = _project(tmp_path)
        config = PharpackConfig(base_path=project, compression="bz2")

        result = Builder().build(config, dev=True)

        assert result.success, result.error
        assert result.compression is None
        assert not Phar(project / "index.phar").get_entry("index.php").is_compressed()

    def test_debug_mode_dumps_contents(self, tmp_path):
        """测试调试模式把归档内容解包到 .box_dump"""
        project = _project(tmp_path)
        config = PharpackConfig(base_path=project)

        result = Builder().build(config, debug=True)

        assert result.success, result.error
        assert (project / ".box_dump" / "src" / "App.php").is_file()
        assert (project / ".box_dump" / ".phar" / "stub.php").read_bytes().endswith(b"?>\r\n")

    def test_compression_failure_is_not_fatal(self, tmp_path):
        """测试压缩模块不可用时保留未压缩的归档"""
        project = _project(tmp_path)
        config = PharpackConfig(base_path=project, compression="gz")

        with patch("pharpack.box.is_codec_available", return_value=False):
            result = Builder().build(config)

        assert result.success, result.error
        assert result.compression is None

    def test_stub_file(self, tmp_path):
        """测试使用自定义 stub 文件"""
        project = _project(tmp_path)
        (project / "stub.php").write_text("<?php // custom\n__HALT_COMPILER();", encoding="utf-8")
        config = PharpackConfig(base_path=project, stub={"generate": False, "path": "stub.php"})

        result = Builder().build(config)

        assert result.success, result.error
        phar = Phar(project / "index.phar")
        assert phar.get_stub() == "<?php // custom\n__HALT_COMPILER(); ?>\r\n"
        assert "stub.php" not in phar.names()

    def test_missing_input_fails(self, tmp_path):
        """测试输入不存在时返回失败结果"""
        project = _project(tmp_path)
        config = PharpackConfig(base_path=project, inputs=[{"path": "missing"}])

        result = Builder().build(config)

        assert not result.success
        assert "missing" in result.error
        assert not (project / "index.phar").exists()
        assert not (project / "index.phar.tmp").exists()

    def test_signing_failure_removes_tmp(self, tmp_path):
        """测试签名失败时删除临时归档"""
        project = _project(tmp_path)
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        (project / "private.pem").write_bytes(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(b"secret"),
        ))
        config = PharpackConfig(base_path=project, signing={"key": "private.pem", "key_pass": "wrong"})

        result = Builder().build(config)

        assert not result.success
        assert "签名失败" in result.error
        assert not (project / "index.phar.tmp").exists()
        assert not (project / "index.phar.tmp.pubkey").exists()
        assert not (project / "index.phar").exists()

    def test_openssl_signing(self, tmp_path):
        """测试 OpenSSL 签名并输出公钥"""
        project = _project(tmp_path)
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        (project / "private.pem").write_bytes(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        ))
        config = PharpackConfig(base_path=project, signing={"key": "private.pem"})

        result = Builder().build(config)

        assert result.success, result.error
        assert result.signature["hash_type"] == "OpenSSL"
        assert (project / "index.phar.pubkey").is_file()
        assert Phar(project / "index.phar").verify_signature()
