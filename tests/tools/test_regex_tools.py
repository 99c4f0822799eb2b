"""Tests for the regex toolset."""

from __future__ import annotations

import pytest

from mcptools.tools.regex_tools import RegexError, compile_pattern


class TestCompilePattern:
    def test_flags_are_canonicalised(self) -> None:
        assert compile_pattern("a", "ig").flags == "gi"

    @pytest.mark.parametrize("flags", ["z", "gg"])
    def test_bad_flags(self, flags: str) -> None:
        with pytest.raises(RegexError, match="Invalid flags supplied to RegExp constructor"):
            compile_pattern("a", flags)

    def test_bad_pattern(self) -> None:
        with pytest.raises(RegexError, match="Invalid regular expression: /\\[invalid/"):
            compile_pattern("[invalid")

    def test_named_groups_and_backreferences(self) -> None:
        compiled = compile_pattern(r"(?<c>a)\k<c>")

        found = compiled.search("xaa")
        assert found is not None
        assert found.groupdict() == {"c": "a"}

    def test_dollar_does_not_match_before_trailing_newline(self) -> None:
        assert compile_pattern("a$").search("a\n") is None
        assert compile_pattern("a$", "m").search("a\nb") is not None

    def test_lookbehind_is_untouched(self) -> None:
        assert compile_pattern(r"(?<=\$)\d+").search("$42").group(0) == "42"

    def test_source_escapes_slashes(self) -> None:
        assert compile_pattern("a/b").source == "a\\/b"
        assert compile_pattern("").source == "(?:)"

    def test_non_global_yields_one_match(self) -> None:
        assert len(list(compile_pattern(r"\d").finditer("1 2 3"))) == 1
        assert len(list(compile_pattern(r"\d", "g").finditer("1 2 3"))) == 3

    def test_sticky_is_anchored(self) -> None:
        assert compile_pattern("b", "y").search("ab") is None
        assert [m.group(0) for m in compile_pattern("a", "gy").finditer("aab")] == ["a", "a"]

    def test_replacement_tokens(self) -> None:
        compiled = compile_pattern(r"(\w+)@(?<host>\w+)", "g")

        assert compiled.sub("$2 at $1", "me@home") == ("home at me", 1)
        assert compiled.sub("[$&]", "me@home")[0] == "[me@home]"
        assert compiled.sub("$<host>", "me@home")[0] == "home"
        assert compiled.sub("$$", "me@home")[0] == "$"


class TestMatchCount:
    def test_counts_global_matches(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_match_count", {"text": "a1b22c333", "pattern": "\\d+"})

        assert envelope["result"] == 3
        assert envelope["metadata"] == {"pattern": "\\d+", "flags": "g", "textLength": 9}

    def test_without_global_flag(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_match_count", {"text": "a1b22c333", "pattern": "\\d+", "flags": ""}
        )
        assert envelope["result"] == 1

    def test_invalid_pattern(self, call_tool) -> None:
        envelope, result = call_tool("regex", "regex_match_count", {"text": "x", "pattern": "("})

        assert envelope["success"] is False
        assert envelope["error"].startswith("Invalid regex pattern: ")
        assert result.isError is False


class TestMatch:
    def test_first_match(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_match", {"text": "hello world", "pattern": "wor"})
        assert envelope["result"] == {"isMatch": True, "firstMatch": "wor", "index": 6}

    def test_no_match(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_match", {"text": "hello", "pattern": "xyz"})
        assert envelope["result"] == {"isMatch": False, "firstMatch": None, "index": -1}

    def test_case_insensitive(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_match", {"text": "HELLO", "pattern": "hello", "flags": "i"})
        assert envelope["result"]["isMatch"] is True


class TestExtract:
    def test_match_details(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_extract", {"text": "on 2023-06-15", "pattern": "(?<y>\\d{4})-(\\d{2})"}
        )

        assert envelope["result"] == [
            {"match": "2023-06", "index": 3, "groups": ["2023", "06"], "namedGroups": {"y": "2023"}}
        ]
        assert envelope["metadata"]["totalMatches"] == 1

    def test_invalid_quantifier(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_extract", {"text": "test", "pattern": "*invalid*"})

        assert envelope["success"] is False
        assert "Invalid regex pattern" in envelope["error"]

    def test_wrong_argument_type_is_a_dispatch_error(self, call_tool) -> None:
        envelope, result = call_tool("regex", "regex_extract", {"text": None, "pattern": "a"})

        assert result.isError is True
        assert "Invalid arguments" in envelope["error"]


class TestReplace:
    def test_global_replace(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_replace", {"text": "a-b-c", "pattern": "-", "replacement": "+"}
        )

        assert envelope["result"] == {
            "originalText": "a-b-c",
            "newText": "a+b+c",
            "changeCount": 2,
            "hasChanges": True,
        }
        assert envelope["metadata"]["newLength"] == 5

    def test_single_replace(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_replace", {"text": "a-b-c", "pattern": "-", "replacement": "+", "flags": ""}
        )
        assert envelope["result"]["newText"] == "a+b-c"

    def test_group_references(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex",
            "regex_replace",
            {"text": "John Smith", "pattern": "(\\w+) (\\w+)", "replacement": "$2, $1"},
        )
        assert envelope["result"]["newText"] == "Smith, John"

    def test_no_change(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_replace", {"text": "abc", "pattern": "x", "replacement": "y"})

        assert envelope["result"]["changeCount"] == 0
        assert envelope["result"]["hasChanges"] is False


class TestSplit:
    def test_split(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_split", {"text": "one1two2three3four", "pattern": "\\d"})

        assert envelope["result"] == {"parts": ["one", "two", "three", "four"], "count": 4}

    def test_limit_keeps_remainder(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_split", {"text": "a,b,c,d,e", "pattern": ",", "limit": 3})

        assert envelope["result"]["parts"] == ["a", "b", "c,d,e"]
        assert envelope["metadata"]["limit"] == 3

    def test_unlimited_metadata(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_split", {"text": "a,b,c", "pattern": ","})

        assert envelope["metadata"]["limit"] == "unlimited"
        assert envelope["metadata"]["originalLength"] == 5

    def test_captures_are_included(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_split", {"text": "a1b", "pattern": "(\\d)"})
        assert envelope["result"]["parts"] == ["a", "1", "b"]

    def test_empty_text(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_split", {"text": "", "pattern": ","})
        assert envelope["result"] == {"parts": [""], "count": 1}

    def test_no_delimiter(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_split", {"text": "hello world", "pattern": "xyz"})
        assert envelope["result"]["parts"] == ["hello world"]


class TestExtractJson:
    def test_objects_and_arrays(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_extract_json", {"text": 'Data: {"a": 1} and {"b": 2} plus [1,2,3]'}
        )

        parsed = [entry["parsed"] for entry in envelope["result"]["validJson"]]
        assert parsed == [{"a": 1}, {"b": 2}, [1, 2, 3]]

    def test_invalid_candidates_are_reported(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_extract_json", {"text": 'Invalid: {name: "John"} and valid: {"age": 30}'}
        )

        result = envelope["result"]
        assert result["validCount"] == 1
        assert result["invalidCount"] == 1
        assert result["invalidJson"][0]["error"] == "Invalid JSON syntax"

    def test_nested(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_extract_json", {"text": 'Nested: {"user": {"name": "John", "data": [1,2,3]}}'}
        )

        assert envelope["result"]["validJson"][0]["parsed"]["user"]["data"] == [1, 2, 3]

    def test_plain_text(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_extract_json", {"text": "Just plain text here"})

        assert envelope["result"]["totalFound"] == 0
        assert envelope["metadata"] == {"textLength": 20}


class TestFindGroups:
    def test_positional_groups(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_find_groups", {"text": "John: 25, Jane: 30", "pattern": "(\\w+): (\\d+)"}
        )

        groups = envelope["result"]["groups"]
        assert [g["captureGroups"] for g in groups] == [["John", "25"], ["Jane", "30"]]
        assert envelope["result"]["hasNamedGroups"] is False

    def test_named_groups(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex",
            "regex_find_groups",
            {"text": "test@example.com", "pattern": "(?<user>\\w+)@(?<domain>\\w+\\.\\w+)"},
        )

        assert envelope["result"]["groups"][0]["namedGroups"] == {"user": "test", "domain": "example.com"}
        assert envelope["result"]["hasNamedGroups"] is True

    def test_positions(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_find_groups", {"text": "test (abc) more (def)", "pattern": "\\((\\w+)\\)"}
        )

        first, second = envelope["result"]["groups"]
        assert (first["matchIndex"], first["index"]) == (0, 5)
        assert second["matchIndex"] == 1


class TestValidate:
    def test_valid(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_validate", {"pattern": "\\d+", "flags": "g"})

        assert envelope["result"] == {
            "isValid": True,
            "pattern": "\\d+",
            "flags": "g",
            "source": "\\d+",
            "compiledFlags": "g",
        }
        assert envelope["metadata"] == {"patternLength": 3}

    def test_invalid_is_still_success(self, call_tool) -> None:
        envelope, result = call_tool("regex", "regex_validate", {"pattern": "[invalid"})

        assert envelope["success"] is True
        assert envelope["result"]["isValid"] is False
        assert envelope["result"]["error"]
        assert result.isError is False

    def test_empty_pattern(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_validate", {"pattern": ""})
        assert envelope["result"]["source"] == "(?:)"


class TestTokenize:
    def test_default_delimiters(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_tokenize", {"text": "Hello, world! How are you?"})

        tokens = [t["token"] for t in envelope["result"]["tokens"]]
        assert tokens == ["Hello", "world", "How", "are", "you"]
        assert [t["index"] for t in envelope["result"]["tokens"]] == [0, 1, 2, 3, 4]

    def test_custom_delimiter(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_tokenize", {"text": "apple,banana;cherry:grape", "pattern": "[,;:]"}
        )
        assert envelope["result"]["tokenCount"] == 4

    def test_average_length(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_tokenize", {"text": "a bb ccc"})
        assert envelope["result"]["averageTokenLength"] == 2

    @pytest.mark.parametrize("text", ["", "   "])
    def test_blank_text(self, call_tool, text: str) -> None:
        envelope, _ = call_tool("regex", "regex_tokenize", {"text": text})

        assert envelope["result"]["tokenCount"] == 0
        assert envelope["result"]["averageTokenLength"] == 0

    def test_invalid_pattern(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_tokenize", {"text": "a b", "pattern": "[invalid"})

        assert envelope["success"] is False
        assert envelope["error"].startswith("Tokenization error")


class TestNormalizeWhitespace:
    def test_defaults(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_normalize_whitespace", {"text": "  hello    world  \r\n  "})

        result = envelope["result"]
        assert result["normalizedText"] == "hello world"
        assert "trimmed start" in result["changes"]
        assert "trimmed end" in result["changes"]
        assert result["hasChanges"] is True

    def test_remove_line_breaks(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex",
            "regex_normalize_whitespace",
            {"text": "hello\nworld\ntest", "options": {"removeLineBreaks": True}},
        )
        assert envelope["result"]["normalizedText"] == "hello world test"

    def test_normalize_line_breaks(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_normalize_whitespace", {"text": "hello\r\nworld\rtest"})

        assert envelope["result"]["normalizedText"] == "hello\nworld\ntest"
        assert "normalized line breaks" in envelope["result"]["changes"]

    def test_keep_edges(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex",
            "regex_normalize_whitespace",
            {"text": "  hello  world  ", "options": {"trimStart": False, "trimEnd": False}},
        )
        assert envelope["result"]["normalizedText"] == " hello world "

    def test_no_changes(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_normalize_whitespace", {"text": "hello world"})

        assert envelope["result"]["hasChanges"] is False
        assert envelope["result"]["changes"] == []

    def test_metadata(self, call_tool) -> None:
        envelope, _ = call_tool("regex", "regex_normalize_whitespace", {"text": "  test  "})

        assert envelope["metadata"]["originalLength"] == 8
        assert envelope["metadata"]["newLength"] == 4
        assert envelope["metadata"]["options"]["collapseSpaces"] is True


class TestRedact:
    def test_default_replacement(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex",
            "regex_redact",
            {
                "text": "Contact john@test.com or call 555-123-4567",
                "patterns": [
                    {"name": "email", "pattern": "\\w+@\\w+\\.\\w+"},
                    {"name": "phone", "pattern": "\\d{3}-\\d{3}-\\d{4}"},
                ],
            },
        )

        result = envelope["result"]
        assert result["redactedText"] == "Contact [REDACTED] or call [REDACTED]"
        assert result["totalRedactions"] == 2
        assert result["hasRedactions"] is True

    def test_custom_replacement_and_matches(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex",
            "regex_redact",
            {"text": "Numbers: 123, 456, 789", "patterns": [{"name": "n", "pattern": "\\d+", "replacement": "#"}]},
        )

        redaction = envelope["result"]["redactions"][0]
        assert envelope["result"]["redactedText"] == "Numbers: #, #, #"
        assert redaction["matchCount"] == 3
        assert redaction["matches"][0] == {"text": "123", "index": 9}

    def test_patterns_without_matches_are_skipped(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_redact", {"text": "nothing here", "patterns": [{"name": "n", "pattern": "\\d"}]}
        )

        assert envelope["result"]["redactions"] == []
        assert envelope["result"]["hasRedactions"] is False

    def test_invalid_pattern(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_redact", {"text": "x", "patterns": [{"name": "bad", "pattern": "[invalid"}]}
        )

        assert envelope["success"] is False
        assert envelope["error"].startswith("Redaction error")

    def test_metadata(self, call_tool) -> None:
        envelope, _ = call_tool(
            "regex", "regex_redact", {"text": "test string", "patterns": [{"name": "t", "pattern": "TEST"}]}
        )

        assert envelope["result"]["redactedText"] == "[REDACTED] string"
        assert envelope["metadata"] == {"originalLength": 11, "newLength": 17, "patternsUsed": 1, "flags": "gi"}
