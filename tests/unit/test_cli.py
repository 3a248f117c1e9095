"""
命令行接口单元测试
"""

import pytest
from typer.testing import CliRunner

from pharpack.cli.main import app
from pharpack.phar import Phar


runner = CliRunner()


@pytest.fixture
def project(tmp_path):
    (tmp_path / "src").mkdir()
    (tmp_path / "index.php").write_text("<?php\nrequire __DIR__ . '/src/App.php';\n", encoding="utf-8")
    (tmp_path / "src" / "App.php").write_text("<?php\nclass App {}\n", encoding="utf-8")
    return tmp_path


@pytest.fixture
def phar_file(tmp_path):
    path = tmp_path / "app.phar"
    phar = Phar(path, alias="app.phar")
    phar.start_buffering()
    phar.add_from_string("index.php", "<?php echo 1;")
    phar.add_from_string("src/App.php", "<?php class App {}")
    phar.stop_buffering()
    return path


class TestCompileCommand:
    """compile 命令测试"""

    def test_compile_with_config(self, project):
        """测试使用配置文件编译"""
        (project / "pharpack.yaml").write_text("output: dist/app.phar\ncompression: gz\n", encoding="utf-8")

        result = runner.invoke(app, ["compile", "-d", str(project), "--no-parallel"])

        assert result.exit_code == 0, result.output
        phar = Phar(project / "dist" / "app.phar")
        assert sorted(phar.names()) == ["index.php", "src/App.php"]

    def test_compile_output_override(self, project):
        """测试 -o 覆盖输出路径"""
        result = runner.invoke(app, ["compile", "-d", str(project), "-o", str(project / "out.phar")])

        assert result.exit_code == 0, result.output
        assert (project / "out.phar").is_file()

    def test_invalid_config(self, project):
        """测试配置无效时退出码为 1"""
        (project / "pharpack.yaml").write_text("unknown_field: 1\n", encoding="utf-8")

        result = runner.invoke(app, ["compile", "-d", str(project)])

        assert result.exit_code == 1

    def test_build_failure(self, project):
        """测试编译失败时退出码为 1"""
        (project / "pharpack.yaml").write_text("inputs:\n  - path: missing\n", encoding="utf-8")

        result = runner.invoke(app, ["compile", "-d", str(project)])

        assert result.exit_code == 1
        assert not (project / "index.phar").exists()


class TestValidateCommand:
    """validate 命令测试"""

    def test_valid(self, project):
        """测试有效配置"""
        (project / "pharpack.yaml").write_text("signing:\n  algorithm: SHA256\n", encoding="utf-8")

        result = runner.invoke(app, ["validate", "-c", str(project / "pharpack.yaml")])

        assert result.exit_code == 0, result.output

    def test_invalid(self, project):
        """测试无效配置"""
        (project / "pharpack.yaml").write_text("compression: zstd\n", encoding="utf-8")

        result = runner.invoke(app, ["validate", "-c", str(project / "pharpack.yaml")])

        assert result.exit_code == 1

    def test_missing_file(self, tmp_path):
        """测试配置文件不存在"""
        result = runner.invoke(app, ["validate", "-c", str(tmp_path / "missing.yaml")])

        assert result.exit_code == 1


class TestArchiveCommands:
    """info / extract / verify 命令测试"""

    def test_info_list(self, phar_file):
        """测试显示文件列表"""
        result = runner.invoke(app, ["info", str(phar_file), "--list"])

        assert result.exit_code == 0, result.output
        assert "src/App.php" in result.output

    def test_info_not_a_phar(self, tmp_path):
        """测试读取非 PHAR 文件"""
        path = tmp_path / "plain.txt"
        path.write_text("hello", encoding="utf-8")

        result = runner.invoke(app, ["info", str(path)])

        assert result.exit_code == 1

    def test_extract(self, phar_file, tmp_path):
        """测试解包"""
        result = runner.invoke(app, ["extract", str(phar_file), "-d", str(tmp_path / "out")])

        assert result.exit_code == 0, result.output
        assert (tmp_path / "out" / "src" / "App.php").read_text() == "<?php class App {}"

    def test_extract_non_empty_dir(self, phar_file, tmp_path):
        """测试输出目录不为空时需要 --force"""
        (tmp_path / "out").mkdir()
        (tmp_path / "out" / "index.php").write_text("existing", encoding="utf-8")

        result = runner.invoke(app, ["extract", str(phar_file), "-d", str(tmp_path / "out")])
        assert result.exit_code == 1

        result = runner.invoke(app, ["extract", str(phar_file), "-d", str(tmp_path / "out"), "--force"])
        assert result.exit_code == 0, result.output
        assert (tmp_path / "out" / "index.php").read_text() == "<?php echo 1;"

    def test_verify(self, phar_file):
        """测试校验签名"""
        result = runner.invoke(app, ["verify", str(phar_file)])

        assert result.exit_code == 0, result.output

    def test_verify_tampered(self, phar_file):
        """测试被篡改的归档"""
        data = bytearray(phar_file.read_bytes())
        data[-10] ^= 0xFF
        phar_file.write_bytes(bytes(data))

        result = runner.invoke(app, ["verify", str(phar_file)])

        assert result.exit_code == 1

    def test_env(self):
        """测试显示运行环境"""
        result = runner.invoke(app, ["env"])

        assert result.exit_code == 0, result.output
        assert "gz" in result.output
