"""
压缩器单元测试

测试 PHP/JSON/占位符压缩器、压缩器链和符号前缀器。
"""

import pytest

from pharpack.compactor import (
    Compactors,
    Json,
    NamespaceScoper,
    NullScoper,
    Php,
    PhpScoper,
    Placeholder,
    ScopingError,
    SymbolsRegistry,
)
from pharpack.compactor.php import strip_php


class TestPhpCompactor:
    """PHP 压缩器测试"""

    def test_strip_comments_keeps_line_count(self):
        """测试去掉注释后行数不变"""
        source = (
            "<?php\n"
            "// comment\n"
            "$a = 1; # hash\n"
            "/* block\n"
            " comment */\n"
            "echo 'x // not comment';\n"
        )

        result = strip_php(source)

        assert result == "<?php\n\n$a = 1; \n\n\necho 'x // not comment';\n"
        assert result.count('\n') == source.count('\n')

    def test_docblocks_removed(self):
        """测试文档注释和其中的注解同样被去掉，行数不变"""
        source = "<?php\n/**\n * @Route(\"/home\")\n */\nfunction home() {}\n"

        result = strip_php(source)

        assert result == "<?php\n\n\n\nfunction home() {}\n"

    def test_collapse_indentation(self):
        """测试缩进和连续空白被折叠"""
        source = "<?php\nif ($a) {\n        return    $b;\n}\n"

        assert strip_php(source) == "<?php\nif ($a) {\nreturn $b;\n}\n"

    def test_inline_html_preserved(self):
        """测试 PHP 代码之外的内容原样保留"""
        source = "<html>  // not php  </html>\n<?php /* c */ echo 1; ?>\n  <b># still html</b>\n"

        result = strip_php(source)

        assert result.startswith("<html>  // not php  </html>\n<?php ")
        assert "/* c */" not in result
        assert result.endswith("?>\n  <b># still html</b>\n")

    def test_attributes_preserved(self):
        """测试 #[...] 属性不被当作注释"""
        source = "<?php\n#[Attribute]\nclass A {}\n"

        assert "#[Attribute]" in strip_php(source)

    def test_heredoc_preserved(self):
        """测试 heredoc 中的内容不被修改"""
        source = "<?php\n$a = <<<EOT\n  // keep   me\nEOT;\n// drop me\n"

        result = strip_php(source)

        assert "  // keep   me\n" in result
        assert "drop me" not in result

    def test_only_php_files(self):
        """测试只处理 .php 文件"""
        compactor = Php()
        contents = "<?php // comment\n"

        assert compactor.supports("src/a.php")
        assert not compactor.supports("src/a.txt")
        assert compactor.compact("src/a.txt", contents) == contents
        assert "comment" not in compactor.compact("src/a.php", contents)


class TestJsonCompactor:
    """JSON 压缩器测试"""

    def test_minify(self):
        """测试去掉 JSON 空白"""
        contents = '{\n    "name": "acme/app",\n    "require": {\n        "php": ">=8.1"\n    }\n}\n'

        assert Json().compact("composer.json", contents) == '{"name":"acme/app","require":{"php":">=8.1"}}'

    def test_lock_files_supported(self):
        """测试默认处理 .lock 文件"""
        assert Json().supports("composer.lock")

    def test_invalid_json_unchanged(self):
        """测试无法解析的 JSON 原样返回"""
        contents = '{"broken": '

        assert Json().compact("a.json", contents) == contents

    def test_unicode_kept(self):
        """测试非 ASCII 字符不被转义"""
        assert Json().compact("a.json", '{"name": "名字"}') == '{"name":"名字"}'


class TestPlaceholder:
    """占位符压缩器测试"""

    def test_replace_all_occurrences(self):
        """测试替换全部出现的占位符"""
        compactor = Placeholder({'@name@': 'world', '@version@': '1.0.0'})

        result = compactor.compact("a.txt", "hello @name@ v@version@ @name@")

        assert result == "hello world v1.0.0 world"

    def test_as_placeholder(self):
        """测试占位符能力查询"""
        compactor = Placeholder({})

        assert compactor.as_placeholder() is compactor
        assert compactor.as_scoper() is None
        assert Php().as_placeholder() is None


class TestCompactors:
    """压缩器链测试"""

    def test_applied_in_order(self):
        """测试按顺序执行，前一个的输出是后一个的输入"""
        chain = Compactors(
            Placeholder({'@a@': '@b@'}),
            Placeholder({'@b@': 'done'}),
        )

        assert chain.compact("a.txt", "@a@") == "done"

    def test_unsupported_files_skipped(self):
        """测试不支持的文件不会被处理"""
        chain = Compactors(Php(), Json())
        contents = "# not a comment\n"

        assert chain.compact("README.md", contents) == contents

    def test_scoper_discovered(self):
        """测试链中的前缀器可以被找到"""
        scoper = NamespaceScoper('Scoped')
        chain = Compactors(Php(), PhpScoper(scoper))

        assert chain.get_scoper() is scoper
        assert chain.get_scoper_symbols_registry() is scoper.get_symbols_registry()
        assert len(chain) == 2

    def test_no_scoper(self):
        """测试没有前缀器时返回 None"""
        chain = Compactors(Php())

        assert chain.get_scoper() is None
        assert chain.get_scoper_symbols_registry() is None

    def test_register_symbols_registry(self):
        """测试替换前缀器的符号注册表"""
        scoper = NamespaceScoper('Scoped')
        chain = Compactors(PhpScoper(scoper))
        registry = SymbolsRegistry()
        registry.record_class('Foo', 'Scoped\\Foo')

        chain.register_symbols_registry(registry)

        assert scoper.get_symbols_registry() is registry


class TestNamespaceScoper:
    """符号前缀器测试"""

    def test_prefix_namespace_and_imports(self):
        """测试命名空间和 use 导入加上前缀"""
        scoper = NamespaceScoper('Scoped', exclude_namespaces=['Excluded'])
        source = (
            "<?php\n"
            "\n"
            "namespace Acme\\App;\n"
            "\n"
            "use Vendor\\Lib\\Thing;\n"
            "use Excluded\\Other;\n"
            "use Scoped\\Already;\n"
            "use Single;\n"
        )

        result = scoper.scope("src/App.php", source)

        assert "namespace Scoped\\Acme\\App;" in result
        assert "use Scoped\\Vendor\\Lib\\Thing;" in result
        assert "use Excluded\\Other;" in result
        assert "use Scoped\\Already;" in result
        assert "use Single;" in result
        assert result.count('\n') == source.count('\n')

    def test_global_file_moved_into_prefix(self):
        """测试全局命名空间中的声明被移入前缀命名空间并记录"""
        scoper = NamespaceScoper('Scoped')
        source = "<?php\n\nclass Foo {}\n\nfunction bar() {}\n"

        result = scoper.scope("lib.php", source)

        assert result == "<?php\n\nnamespace Scoped; class Foo {}\n\nfunction bar() {}\n"
        registry = scoper.get_symbols_registry()
        assert registry.get_recorded_classes() == [('Foo', 'Scoped\\Foo')]
        assert registry.get_recorded_functions() == [('bar', 'Scoped\\bar')]

    def test_global_file_qualifies_parent_classes(self):
        """测试移入前缀命名空间时继承的全局类改为完全限定名"""
        scoper = NamespaceScoper('Scoped')
        source = (
            "<?php\n"
            "class Legacy extends Exception implements Countable\n"
            "{\n"
            "    public function count(): int { return 0; }\n"
            "}\n"
        )

        result = scoper.scope("Legacy.php", source)

        assert "namespace Scoped; class Legacy extends \\Exception implements \\Countable\n" in result
        assert "public function count(): int {" in result

    def test_global_file_qualifies_class_references(self):
        """测试移入前缀命名空间时引用的全局类改为完全限定名，本文件声明和导入的类不变"""
        scoper = NamespaceScoper('Scoped')
        source = (
            "<?php\n"
            "use Acme\\Helper;\n"
            "\n"
            "function build(ArrayObject $items, Legacy $legacy): ?Iterator\n"
            "{\n"
            "    try {\n"
            "        $date = DateTime::createFromFormat('Y', '2024');\n"
            "        return new ArrayIterator([new Helper(), 'create new instance']);\n"
            "    } catch (RuntimeException $e) {\n"
            "        return null;\n"
            "    }\n"
            "}\n"
            "\n"
            "class Legacy\n"
            "{\n"
            "    private ?SplStack $stack;\n"
            "}\n"
        )

        result = scoper.scope("helpers.php", source)

        assert "namespace Scoped; use Scoped\\Acme\\Helper;" in result
        assert "function build(\\ArrayObject $items, Legacy $legacy): ?\\Iterator" in result
        assert "\\DateTime::createFromFormat('Y', '2024');" in result
        assert "new \\ArrayIterator([new Helper(), 'create new instance'])" in result
        assert "catch (\\RuntimeException $e)" in result
        assert "private ?\\SplStack $stack;" in result
        assert result.count('\n') == source.count('\n')

    def test_trait_imports_in_class_body_unchanged(self):
        """测试类体内的 trait 导入不加前缀"""
        scoper = NamespaceScoper('Scoped')
        source = (
            "<?php\n"
            "namespace Acme;\n"
            "\n"
            "use Traits\\Loggable;\n"
            "\n"
            "class A\n"
            "{\n"
            "    use Traits\\Loggable;\n"
            "}\n"
        )

        result = scoper.scope("src/A.php", source)

        assert "\nuse Scoped\\Traits\\Loggable;\n" in result
        assert "\n    use Traits\\Loggable;\n" in result

    def test_braced_namespace_imports(self):
        """测试花括号命名空间中只改写命名空间顶层的导入"""
        scoper = NamespaceScoper('Scoped')
        source = (
            "<?php\n"
            "namespace Acme {\n"
            "    use Vendor\\Lib;\n"
            "    class A {\n"
            "        use Traits\\Timestamps;\n"
            "    }\n"
            "}\n"
        )

        result = scoper.scope("src/A.php", source)

        assert "namespace Scoped\\Acme {" in result
        assert "    use Scoped\\Vendor\\Lib;\n" in result
        assert "        use Traits\\Timestamps;\n" in result

    def test_fully_qualified_names_prefixed(self):
        """测试完全限定名加上前缀，排除的、已带前缀的和全局名字不变"""
        scoper = NamespaceScoper('Scoped', exclude_namespaces=['Excluded'])
        source = (
            "<?php\n"
            "namespace Acme;\n"
            "\n"
            "$x = new \\Vendor\\Lib\\X();\n"
            "$y = \\Excluded\\Y::make();\n"
            "$z = $x instanceof \\Scoped\\Z;\n"
            "$n = \\strlen('abc');\n"
            "throw new \\Exception();\n"
        )

        result = scoper.scope("src/A.php", source)

        assert "new \\Scoped\\Vendor\\Lib\\X();" in result
        assert "\\Excluded\\Y::make();" in result
        assert "instanceof \\Scoped\\Z;" in result
        assert "\\strlen('abc');" in result
        assert "new \\Exception();" in result

    def test_global_file_after_declare(self):
        """测试命名空间声明插入在 declare 之后"""
        scoper = NamespaceScoper('Scoped')
        source = "<?php declare(strict_types=1);\nclass Foo {}\n"

        result = scoper.scope("lib.php", source)

        assert result.startswith("<?php declare(strict_types=1); namespace Scoped; \nclass Foo {}")

    def test_expose_disabled(self):
        """测试关闭暴露时不记录符号"""
        scoper = NamespaceScoper('Scoped', expose_global_classes=False, expose_global_functions=False)

        scoper.scope("lib.php", "<?php\nclass Foo {}\nfunction bar() {}\n")

        assert scoper.get_symbols_registry().count() == 0

    def test_global_script_without_declarations_unchanged(self):
        """测试没有声明的全局脚本保持不变"""
        scoper = NamespaceScoper('Scoped')
        source = "<?php\necho 'hello';\n"

        assert scoper.scope("bin/app.php", source) == source

    def test_non_php_contents_unchanged(self):
        """测试没有 PHP 开始标签的内容保持不变"""
        scoper = NamespaceScoper('Scoped')

        assert scoper.scope("a.php", "namespace Foo;") == "namespace Foo;"

    def test_global_namespace_block_rejected(self):
        """测试全局命名空间块无法处理"""
        scoper = NamespaceScoper('Scoped')

        with pytest.raises(ScopingError):
            scoper.scope("a.php", "<?php\nnamespace {\n    class Foo {}\n}\n")

    def test_php_scoper_returns_unscopable_unchanged(self):
        """测试压缩器遇到无法处理的文件时原样返回"""
        compactor = PhpScoper(NamespaceScoper('Scoped'))
        source = "<?php\nnamespace {\n}\n"

        assert compactor.compact("a.php", source) == source
        assert compactor.compact_content(source) == source

    def test_php_scoper_capability(self):
        """测试前缀器能力查询"""
        scoper = NamespaceScoper('Scoped')
        compactor = PhpScoper(scoper)

        assert compactor.as_scoper() is scoper
        assert compactor.as_placeholder() is None

    def test_null_scoper(self):
        """测试空前缀器"""
        scoper = NullScoper()

        assert scoper.scope("a.php", "<?php namespace Foo;") == "<?php namespace Foo;"
        assert scoper.get_prefix() == ''
        assert scoper.get_symbols_registry().count() == 0


class TestSymbolsRegistry:
    """符号注册表测试"""

    def _registry(self, classes=(), functions=()):
        registry = SymbolsRegistry()
        for name in classes:
            registry.record_class(name, f'Scoped\\{name}')
        for name in functions:
            registry.record_function(name, f'Scoped\\{name}')
        return registry

    def test_case_insensitive(self):
        """测试类名不区分大小写"""
        registry = self._registry(classes=['Foo', 'FOO', '\\foo'])

        assert registry.count() == 1

    def test_union_commutative(self):
        """测试合并满足交换律"""
        a = self._registry(classes=['A'], functions=['f'])
        b = self._registry(classes=['B'])

        assert SymbolsRegistry.create_from_registries([a, b]) == SymbolsRegistry.create_from_registries([b, a])

    def test_union_idempotent(self):
        """测试重复合并结果不变"""
        a = self._registry(classes=['A'], functions=['f'])

        merged = SymbolsRegistry.create_from_registries([a, a, a])

        assert merged == a
        assert merged.count() == 2

    def test_none_and_empty_ignored(self):
        """测试 None 和空注册表被忽略"""
        a = self._registry(functions=['f'])

        merged = SymbolsRegistry.create_from_registries([None, SymbolsRegistry(), a, None])

        assert merged == a

    def test_copy_is_independent(self):
        """测试副本与原注册表互不影响"""
        a = self._registry(classes=['A'])
        copy = a.copy()
        copy.record_class('B', 'Scoped\\B')

        assert a.count() == 1
        assert copy.count() == 2

    def test_dict_conversion(self):
        """测试字典转换"""
        a = self._registry(classes=['B', 'A'], functions=['f'])

        data = a.to_dict()

        assert data == {
            'functions': [['f', 'Scoped\\f']],
            'classes': [['A', 'Scoped\\A'], ['B', 'Scoped\\B']],
        }
        assert SymbolsRegistry.from_dict(data) == a
