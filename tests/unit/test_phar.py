"""
PHAR 容器格式单元测试
"""

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from pharpack.phar import CompressionAlgorithm, Phar, PharError, SigningAlgorithm
from pharpack.phar.metadata import MetadataError, serialize, unserialize


def _rsa_key_pem(passphrase=None):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    encryption = (
        serialization.BestAvailableEncryption(passphrase.encode('utf-8'))
        if passphrase else serialization.NoEncryption()
    )
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )


def _build(path, files=None, **options):
    phar = Phar(path, alias=options.pop('alias', None))
    phar.start_buffering()
    for name, contents in (files or {'index.php': '<?php echo "hi";'}).items():
        phar.add_from_string(name, contents)
    if 'metadata' in options:
        phar.set_metadata(options['metadata'])
    if 'stub' in options:
        phar.set_stub(options['stub'])
    phar.stop_buffering()
    return phar


class TestPharRoundTrip:
    """写出后重新读取的测试"""

    def test_entries_alias_and_metadata(self, tmp_path):
        """测试条目、别名和元数据在重新打开后保持一致"""
        path = tmp_path / "app.phar"
        _build(
            path,
            files={'index.php': '<?php require "src/A.php";', 'src/A.php': '<?php class A {}'},
            alias='app.phar',
            metadata={'version': '1.0.0', 'tags': ['a', 'b']},
        )

        reopened = Phar(path)

        assert sorted(reopened.names()) == ['index.php', 'src/A.php']
        assert reopened.get_entry('src/A.php').contents == b'<?php class A {}'
        assert reopened.get_alias() == 'app.phar'
        assert reopened.get_metadata() == {'version': '1.0.0', 'tags': ['a', 'b']}

    def test_default_signature_is_sha1(self, tmp_path):
        """测试默认使用 SHA-1 签名"""
        path = tmp_path / "app.phar"
        _build(path)

        signature = Phar(path).get_signature()

        assert signature['hash_type'] == 'SHA-1'
        assert len(signature['hash']) == 40
        assert signature['hash'] == signature['hash'].upper()

    def test_sha256_signature(self, tmp_path):
        """测试 SHA-256 签名"""
        path = tmp_path / "app.phar"
        phar = _build(path)
        phar.set_signature_algorithm(SigningAlgorithm.SHA256)

        reopened = Phar(path)

        assert reopened.get_signature()['hash_type'] == 'SHA-256'
        assert len(reopened.get_signature()['hash']) == 64
        assert reopened.verify_signature()

    def test_file_layout(self, tmp_path):
        """测试文件以 stub 开头、以 GBMB 结尾"""
        path = tmp_path / "app.phar"
        _build(path)

        data = path.read_bytes()

        assert data.startswith(b'<?php __HALT_COMPILER(); ?>\r\n')
        assert data.endswith(b'GBMB')

    def test_no_alias(self, tmp_path):
        """测试未设置别名"""
        path = tmp_path / "app.phar"
        _build(path)

        assert Phar(path).get_alias() is None

    def test_entry_permissions_kept(self, tmp_path):
        """测试条目权限位被保存"""
        path = tmp_path / "app.phar"
        phar = Phar(path)
        phar.add_from_string('bin/run', '#!/bin/sh', permissions=0o755)

        assert Phar(path).get_entry('bin/run').permissions == 0o755


class TestPharValidation:
    """错误处理测试"""

    def test_stub_without_halt_compiler(self, tmp_path):
        """测试 stub 缺少 __HALT_COMPILER 时抛出异常"""
        phar = Phar(tmp_path / "app.phar")

        with pytest.raises(PharError):
            phar.set_stub("<?php echo 1;")

    def test_stub_terminator_normalized(self, tmp_path):
        """测试 stub 结尾被规范化"""
        path = tmp_path / "app.phar"
        _build(path, stub="#!/usr/bin/env php\n<?php\n__HALT_COMPILER();\n// ignored")

        assert Phar(path).get_stub() == "#!/usr/bin/env php\n<?php\n__HALT_COMPILER(); ?>\r\n"

    def test_empty_archive_cannot_be_written(self, tmp_path):
        """测试空归档无法写出"""
        phar = Phar(tmp_path / "app.phar")
        phar.start_buffering()

        with pytest.raises(PharError):
            phar.stop_buffering()

    def test_corrupted_contents_detected(self, tmp_path):
        """测试内容被篡改时打开失败"""
        path = tmp_path / "app.phar"
        _build(path, files={'index.php': '<?php echo "hello world";'})

        data = bytearray(path.read_bytes())
        position = data.index(b'hello')
        data[position] = ord('j')
        path.write_bytes(bytes(data))

        with pytest.raises(PharError):
            Phar(path)

    def test_not_a_phar(self, tmp_path):
        """测试非 PHAR 文件"""
        path = tmp_path / "plain.php"
        path.write_text("<?php echo 1;")

        with pytest.raises(PharError):
            Phar(path)

    def test_invalid_alias(self, tmp_path):
        """测试非法别名"""
        with pytest.raises(PharError):
            Phar(tmp_path / "app.phar", alias="a/b")

    def test_missing_entry(self, tmp_path):
        """测试读取不存在的条目"""
        phar = _build(tmp_path / "app.phar")

        with pytest.raises(PharError):
            phar.get_entry('missing.php')
        assert 'missing.php' not in phar

    def test_entry_outside_archive_rejected(self, tmp_path):
        """测试归档内路径不能越界"""
        phar = Phar(tmp_path / "app.phar")

        with pytest.raises(PharError):
            phar.add_from_string('../evil.php', 'x')


class TestPharCompression:
    """条目压缩测试"""

    @pytest.mark.parametrize("algorithm", [CompressionAlgorithm.GZ, CompressionAlgorithm.BZ2])
    def test_compress_and_reopen(self, tmp_path, algorithm):
        """测试压缩后重新打开内容不变"""
        path = tmp_path / "app.phar"
        contents = '<?php ' + 'echo "repeat";\n' * 200
        phar = _build(path, files={'index.php': contents})

        phar.compress_files(algorithm)
        reopened = Phar(path)

        entry = reopened.get_entry('index.php')
        assert entry.compression == algorithm
        assert entry.is_compressed()
        assert entry.contents == contents.encode('utf-8')

    def test_decompress(self, tmp_path):
        """测试解压全部条目"""
        path = tmp_path / "app.phar"
        phar = _build(path)
        phar.compress_files(CompressionAlgorithm.GZ)

        phar.decompress_files()

        assert not Phar(path).get_entry('index.php').is_compressed()


class TestPharOpenSSL:
    """OpenSSL 签名测试"""

    def test_sign_and_verify(self, tmp_path):
        """测试签名后写出公钥并能校验"""
        path = tmp_path / "app.phar"
        phar = _build(path)

        phar.set_signature_algorithm(SigningAlgorithm.OPENSSL, _rsa_key_pem('secret'), 'secret')

        assert phar.get_public_key_path().is_file()
        reopened = Phar(path)
        assert reopened.get_signature()['hash_type'] == 'OpenSSL'
        assert reopened.verify_signature()

    def test_verify_with_other_key_fails(self, tmp_path):
        """测试使用其他公钥校验失败"""
        path = tmp_path / "app.phar"
        phar = _build(path)
        phar.set_signature_algorithm(SigningAlgorithm.OPENSSL, _rsa_key_pem())

        other = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        other_public = other.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )

        assert Phar(path).verify_signature(other_public) is False

    def test_wrong_passphrase(self, tmp_path):
        """测试口令错误"""
        phar = _build(tmp_path / "app.phar")

        with pytest.raises(PharError):
            phar.set_signature_algorithm(SigningAlgorithm.OPENSSL, _rsa_key_pem('secret'), 'wrong')

    def test_missing_public_key_file(self, tmp_path):
        """测试缺少公钥文件时无法校验"""
        path = tmp_path / "app.phar"
        phar = _build(path)
        phar.set_signature_algorithm(SigningAlgorithm.OPENSSL, _rsa_key_pem())
        phar.get_public_key_path().unlink()

        with pytest.raises(PharError):
            Phar(path).verify_signature()


class TestPharExtract:
    """解包测试"""

    def test_extract_all(self, tmp_path):
        """测试解包全部条目"""
        phar = _build(tmp_path / "app.phar", files={'index.php': '<?php', 'src/A.php': '<?php class A {}'})

        extracted = phar.extract_to(tmp_path / "out")

        assert len(extracted) == 2
        assert (tmp_path / "out" / "src" / "A.php").read_text() == '<?php class A {}'

    def test_extract_selected(self, tmp_path):
        """测试只解包指定条目"""
        phar = _build(tmp_path / "app.phar", files={'index.php': '<?php', 'src/A.php': '<?php class A {}'})

        phar.extract_to(tmp_path / "out", files=['src/A.php'])

        assert not (tmp_path / "out" / "index.php").exists()
        assert (tmp_path / "out" / "src" / "A.php").exists()

    def test_extract_without_overwrite(self, tmp_path):
        """测试不允许覆盖时目标已存在会失败"""
        phar = _build(tmp_path / "app.phar")
        (tmp_path / "out").mkdir()
        (tmp_path / "out" / "index.php").write_text("existing")

        with pytest.raises(PharError):
            phar.extract_to(tmp_path / "out", overwrite=False)
        assert (tmp_path / "out" / "index.php").read_text() == "existing"


class TestMetadata:
    """PHP serialize 格式测试"""

    def test_serialize_dict(self):
        """测试字典编码"""
        assert serialize({'a': 1}) == b'a:1:{s:1:"a";i:1;}'

    def test_serialize_scalars(self):
        """测试标量编码"""
        assert serialize(None) == b'N;'
        assert serialize(True) == b'b:1;'
        assert serialize(1.5) == b'd:1.5;'
        assert serialize('名') == b's:3:"\xe5\x90\x8d";'

    def test_list_round_trip(self):
        """测试连续整数键解码为列表"""
        assert unserialize(serialize(['x', 'y'])) == ['x', 'y']

    def test_sparse_keys_decode_to_dict(self):
        """测试不连续的整数键解码为字典"""
        assert unserialize(b'a:1:{i:5;s:1:"x";}') == {5: 'x'}

    def test_unsupported_type(self):
        """测试不支持的类型"""
        with pytest.raises(MetadataError):
            serialize(object())

    def test_trailing_data(self):
        """测试末尾多余数据"""
        with pytest.raises(MetadataError):
            unserialize(b'i:1;x')
