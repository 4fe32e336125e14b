"""Tests for tools/substitution.py: escaping and placeholder replacement."""

from __future__ import annotations

import re

import pytest

from cvpress.tools.substitution import escape_latex, strip_unresolved, substitute


class TestEscapeLatex:
    @pytest.mark.parametrize(
        ("raw", "escaped"),
        [
            ("&", r"\&"),
            ("%", r"\%"),
            ("$", r"\$"),
            ("#", r"\#"),
            ("_", r"\_"),
            ("{", r"\{"),
            ("}", r"\}"),
            ("~", r"\textasciitilde{}"),
            ("^", r"\textasciicircum{}"),
        ],
    )
    def test_special_characters(self, raw, escaped):
        assert escape_latex(raw) == escaped

    def test_backslash_braces_not_escaped_twice(self):
        assert escape_latex("a\\b") == r"a\textbackslash{}b"

    def test_plain_text_unchanged(self):
        assert escape_latex("Senior Engineer, Berlin") == "Senior Engineer, Berlin"

    def test_non_string_values_coerced(self):
        assert escape_latex(42) == "42"
        assert escape_latex(3.5) == "3.5"


class TestSubstitute:
    def test_company_name_with_ampersand(self):
        result = substitute("Company: {companyName}", {"companyName": "Acme & Co"})
        assert result == r"Company: Acme \& Co"

    def test_all_spellings_give_identical_text(self):
        data = {"company": "Acme & Co"}
        spellings = ["{company}", "{{company}}", "\\{company\\}", "[[company]]"]
        results = {substitute(s, data) for s in spellings}
        assert results == {r"Acme \& Co"}

    def test_every_occurrence_replaced(self):
        result = substitute("{x} and {x} and [[x]]", {"x": "1"})
        assert result == "1 and 1 and 1"

    def test_unknown_placeholder_left_literal(self):
        result = substitute("Dear {hiringManager}, at {companyName}", {"companyName": "Acme"})
        assert result == "Dear {hiringManager}, at Acme"

    def test_none_values_skipped(self):
        result = substitute("{position} at {companyName}", {"position": None, "companyName": "Acme"})
        assert result == "{position} at Acme"

    def test_empty_data_returns_template(self):
        template = r"\textbf{{name}}"
        assert substitute(template, {}) == template

    def test_whole_word_replacement_for_alphanumeric_keys(self):
        result = substitute(r"Applying to companyName as position.", {"companyName": "Acme", "position": "CTO"})
        assert result == "Applying to Acme as CTO."

    def test_whole_word_respects_boundaries(self):
        result = substitute("username name", {"name": "Ada"})
        assert result == "username Ada"

    def test_non_alphanumeric_key_not_replaced_as_word(self):
        result = substitute("first_name {first_name}", {"first_name": "Ada"})
        assert result == "first_name Ada"

    def test_whole_word_values_are_escaped(self):
        result = substitute("Salary: salary", {"salary": "$100k"})
        assert result == r"Salary: \$100k"

    def test_longer_key_not_shadowed_by_prefix(self):
        result = substitute("{name} {nameFull}", {"name": "A", "nameFull": "Ada L"})
        assert result == "A Ada L"

    def test_values_are_not_substituted_into(self):
        # The escaped value of "{b}" is the backslash spelling of placeholder b
        result = substitute("{a}", {"a": "{b}", "b": "X"})
        assert result == r"\{b\}"

    def test_idempotent_with_empty_map(self):
        template = r"\name{{{first}}} [[last]] \{city\} {missing}"
        data = {"first": "Ada & Co", "last": "Love_lace", "city": "50% London"}
        once = substitute(template, data)
        assert substitute(once, {}) == once

    def test_no_unescaped_specials_from_values(self):
        nasty = "R&D 100% $5 #1 a_b ^x ~y {z} \\w"
        result = substitute("{v}", {"v": nasty})
        for ch in "&%$#_":
            assert not re.search(rf"(?<!\\){re.escape(ch)}", result), ch

    def test_key_with_regex_characters(self):
        result = substitute("{a.b} {a+b}", {"a.b": "dot", "a+b": "plus"})
        assert result == "dot plus"


class TestStripUnresolved:
    def test_removes_doubled_bracket_and_backslash_spellings(self):
        text = r"A {{missing}} B [[gone]] C \{absent\} D"
        assert strip_unresolved(text) == "A  B  C  D"

    def test_keeps_latex_arguments(self):
        text = r"\color{cvaccent} \section*{Experience}"
        assert strip_unresolved(text) == text

    def test_named_single_brace_placeholders_removed(self):
        text = r"\color{cvaccent} {position} {location}"
        assert strip_unresolved(text, names=["position"]) == r"\color{cvaccent}  {location}"
