"""Tests for dump reading: line reader, recovering chunker, MySQL grammar."""

import io

import pytest

from dumpshift.source_loader import (
    NULL_SENTINEL,
    AlterTable,
    BaseParser,
    ChunkerStats,
    CreateIndex,
    CreateTable,
    DumpParseError,
    ForeignKeySpec,
    IndexSpec,
    Insert,
    LineReader,
    MySQLDumpParser,
    Other,
    ParseError,
    PrimaryKeySpec,
    SetVariable,
    StatementChunker,
    TypeSpec,
)
from dumpshift.source_loader.base import ModifyColumnSpec
from dumpshift.source_loader.mysql_parser import expand_conditional_comments
from dumpshift.source_loader.recovery import (
    IsolateInsertTuples,
    SkipUnsupportedConstruct,
    SubstituteUnsupportedTypes,
    split_value_tuples,
)


def _split_outside_quotes(text):
    pieces, current, quote = [], [], ""
    for ch in text:
        if quote:
            if ch == quote:
                quote = ""
        elif ch == "'":
            quote = ch
        elif ch == ";":
            pieces.append("".join(current))
            current = []
            continue
        current.append(ch)
    return pieces, "".join(current)


class FakeParser(BaseParser):
    """Minimal grammar: ';'-terminated statements, INSERT tuples of bare words.

    A tuple containing ``bad`` is rejected, as is a column declared as
    ``point``, mimicking the limits of a real grammar.
    """

    def __init__(self):
        self.calls = []

    def parse(self, text):
        self.calls.append(text)
        if text.count("'") % 2:
            raise ParseError("unterminated quoted string")
        if "DELIMITER" in text:
            raise ParseError("DELIMITER statements are not supported")
        if " point" in text.lower():
            raise ParseError("Unsupported column type 'point'")
        pieces, rest = _split_outside_quotes(text)
        if rest.strip():
            raise ParseError("missing statement terminator")

        statements = []
        for piece in (p.strip() for p in pieces):
            if not piece:
                continue
            if piece.upper().startswith("INSERT"):
                statements.append(self._insert(piece))
            else:
                statements.append(Other(piece.split()[0].lower()))
        return statements

    def _insert(self, piece):
        head, _, values = piece.partition("VALUES")
        table = head.split()[2]
        rows = []
        for chunk in values.strip()[1:-1].split("),("):
            if "bad" in chunk:
                raise ParseError("Unsupported value expression 'column'")
            rows.append([v.strip() for v in chunk.split(",")])
        return Insert(table=table, rows=rows)


def chunk(text, parser=None, **kwargs):
    chunker = StatementChunker(LineReader.from_text(text), parser or FakeParser(), **kwargs)
    return chunker, list(chunker)


# ---------------------------------------------------------------------------
# LineReader
# ---------------------------------------------------------------------------


class TestLineReader:

    def test_reads_lines_and_tracks_position(self):
        reader = LineReader.from_text("ab\ncd\n")
        assert reader.read_line() == "ab\n"
        assert reader.line_number == 1
        assert reader.offset == 3
        assert reader.read_line() == "cd\n"
        assert reader.read_line() == ""
        assert reader.eof

    def test_last_line_without_newline(self):
        reader = LineReader.from_text("x;")
        assert reader.read_line() == "x;"
        assert not reader.eof
        assert reader.read_line() == ""
        assert reader.eof

    def test_binary_stream_keeps_invalid_utf8(self):
        reader = LineReader(io.BytesIO(b"\xff\xfe;\n"))
        line = reader.read_line()
        assert line.encode("utf-8", errors="surrogateescape") == b"\xff\xfe;\n"
        assert reader.offset == 4


# ---------------------------------------------------------------------------
# StatementChunker
# ---------------------------------------------------------------------------


class TestStatementChunker:

    def test_statements_in_order(self):
        chunker, statements = chunk("DROP TABLE a;\nLOCK TABLES b;\nUNLOCK TABLES;\n")
        assert [s.label for s in statements] == ["drop", "lock", "unlock"]
        assert chunker.stats.reparsed == 0
        assert chunker.stats.statements == 3

    def test_multi_line_statement(self):
        chunker, statements = chunk("DROP\nTABLE\na;\n")
        assert statements == [Other("drop")]
        assert chunker.stats.reparsed == 0

    def test_semicolon_inside_string_reparses(self):
        chunker, statements = chunk("INSERT INTO t VALUES ('a;\nb');\n")
        assert len(statements) == 1
        assert isinstance(statements[0], Insert)
        assert chunker.stats.reparsed == 1

    def test_no_trailing_newline(self):
        _, statements = chunk("DROP TABLE a;")
        assert statements == [Other("drop")]

    def test_empty_input(self):
        chunker, statements = chunk("")
        assert statements == []
        assert chunker.stats.statements == 0

    def test_trailing_whitespace_is_fine(self):
        _, statements = chunk("DROP TABLE a;\n\n  \n")
        assert statements == [Other("drop")]

    def test_lazy(self):
        reader = LineReader.from_text("DROP TABLE a;\nDROP TABLE b;\n")
        iterator = iter(StatementChunker(reader, FakeParser()))
        assert next(iterator) == Other("drop")
        assert reader.line_number == 1

    def test_bad_tuple_is_isolated(self):
        chunker, statements = chunk("INSERT INTO t VALUES (1,2,3),(bad),(4,5,6);\n")
        assert len(statements) == 2
        assert statements[0].rows == [["1", "2", "3"]]
        assert statements[1].rows == [["4", "5", "6"]]
        assert chunker.stats.skipped == {"insert": 1}

    def test_delimiter_block_is_skipped(self):
        text = (
            "DELIMITER ;;\n"
            "CREATE PROCEDURE p() BEGIN SELECT 1; END;;\n"
            "DELIMITER ;\n"
            "DROP TABLE t;\n"
        )
        chunker, statements = chunk(text)
        assert statements == [Other("drop")]
        assert chunker.stats.skipped == {"create_procedure": 1}

    def test_spatial_type_substituted(self):
        parser = FakeParser()
        chunker, statements = chunk("CREATE TABLE g (id int, loc point);\n", parser)
        assert statements == [Other("create")]
        assert "loc text" in parser.calls[-1]
        assert len(chunker.stats.notes) == 1

    def test_unparsable_tail_raises(self):
        with pytest.raises(DumpParseError) as exc:
            chunk("DROP TABLE a;\nINSERT INTO t VALUES ('x);\n")
        assert exc.value.line_count == 1
        assert "Error parsing last 1 line(s) of input" in str(exc.value)

    def test_unparsable_tail_counts_all_pending_lines(self):
        with pytest.raises(DumpParseError) as exc:
            chunk("INSERT INTO t\nVALUES ('x);\nDROP TABLE b;\n")
        assert exc.value.line_count == 3

    def test_statements_before_failure_are_yielded(self):
        reader = LineReader.from_text("DROP TABLE a;\nINSERT INTO t VALUES ('x);\n")
        seen = []
        with pytest.raises(DumpParseError):
            for statement in StatementChunker(reader, FakeParser()):
                seen.append(statement)
        assert seen == [Other("drop")]

    def test_no_strategies(self):
        with pytest.raises(DumpParseError):
            chunk("INSERT INTO t VALUES (1),(bad);\n", strategies=[])

    def test_shared_stats(self):
        stats = ChunkerStats()
        chunk("DROP TABLE a;\n", stats=stats)
        chunk("DROP TABLE b;\n", stats=stats)
        assert stats.statements == 2


# ---------------------------------------------------------------------------
# Recovery strategies
# ---------------------------------------------------------------------------


class TestSplitValueTuples:

    def test_simple(self):
        assert split_value_tuples("(1,'a'),(2,'b');\n") == (["(1,'a')", "(2,'b')"], "\n")

    def test_quotes_hide_parens_and_terminators(self):
        tuples, rest = split_value_tuples("(1,'a)b;'),(2,'c''d'),(3,'e\\'f');")
        assert tuples == ["(1,'a)b;')", "(2,'c''d')", "(3,'e\\'f')"]
        assert rest == ""

    def test_nested_parens(self):
        assert split_value_tuples("(1,(2)),(3);")[0] == ["(1,(2))", "(3)"]

    def test_open_quote(self):
        assert split_value_tuples("(1,'x") is None

    def test_missing_terminator(self):
        assert split_value_tuples("(1),(2)") is None

    def test_trailing_clause(self):
        assert split_value_tuples("(1) ON DUPLICATE KEY UPDATE a=1;") is None


class TestRecoveryStrategies:

    def test_skip_declines_unrelated_error(self):
        result = SkipUnsupportedConstruct().recover(
            "DROP TABLE a;", ParseError("unterminated quoted string"), FakeParser()
        )
        assert result is None

    def test_skip_waits_for_closing_delimiter(self):
        result = SkipUnsupportedConstruct().recover(
            "DELIMITER ;;\nCREATE TRIGGER t BEFORE INSERT ON x FOR EACH ROW SET @a = 1;;\n",
            ParseError("DELIMITER statements are not supported"),
            FakeParser(),
        )
        assert result is None

    def test_skip_routine_without_delimiters(self):
        result = SkipUnsupportedConstruct().recover(
            "CREATE FUNCTION f() RETURNS int RETURN 1;\n",
            ParseError("CREATE FUNCTION statements are not supported"),
            FakeParser(),
        )
        assert result.skipped == ["create_function"]
        assert result.statements == []

    def test_isolate_declines_non_insert(self):
        assert IsolateInsertTuples().recover("DROP TABLE a;", ParseError("x"), FakeParser()) is None

    def test_isolate_keeps_statement_after_insert(self):
        result = IsolateInsertTuples().recover(
            "INSERT INTO t VALUES (1),(bad);DROP TABLE a;\n", ParseError("x"), FakeParser()
        )
        assert [type(s) for s in result.statements] == [Insert, Other]
        assert result.skipped == ["insert"]

    def test_isolate_keeps_statement_before_insert(self):
        result = IsolateInsertTuples().recover(
            "DROP TABLE a; INSERT INTO t VALUES (1),(bad),(2);\n", ParseError("x"), FakeParser()
        )
        assert result.statements[0] == Other("drop")
        assert [s.rows for s in result.statements[1:]] == [[["1"]], [["2"]]]
        assert result.skipped == ["insert"]

    def test_isolate_reports_unparsable_head(self):
        result = IsolateInsertTuples().recover(
            "junk 'x; INSERT INTO t VALUES (1),(bad);\n", ParseError("x"), FakeParser()
        )
        assert [s.rows for s in result.statements] == [[["1"]]]
        assert result.skipped == ["unparsed", "insert"]

    def test_substitute_declines_without_spatial_error(self):
        result = SubstituteUnsupportedTypes().recover(
            "CREATE TABLE g (loc point);", ParseError("syntax error"), FakeParser()
        )
        assert result is None

    def test_substitute_strips_srid(self):
        parser = FakeParser()
        result = SubstituteUnsupportedTypes().recover(
            "CREATE TABLE g (loc point NOT NULL /*!80003 SRID 4326 */);",
            ParseError("Unsupported column type 'point'"),
            parser,
        )
        assert result is not None
        assert "SRID" not in parser.calls[-1]
        assert "loc text NOT NULL" in parser.calls[-1]


# ---------------------------------------------------------------------------
# MySQLDumpParser
# ---------------------------------------------------------------------------

CREATE_USERS = """
CREATE TABLE `users` (
  `id` bigint NOT NULL AUTO_INCREMENT,
  `name` varchar(40) NOT NULL DEFAULT '',
  `active` tinyint(1) DEFAULT NULL,
  PRIMARY KEY (`id`)
) ENGINE=InnoDB DEFAULT CHARSET=utf8mb4;
"""

CREATE_ORDERS = """
CREATE TABLE `orders` (
  `id` int NOT NULL,
  `user_id` bigint DEFAULT NULL,
  `code` varchar(10) NOT NULL,
  PRIMARY KEY (`id`),
  UNIQUE KEY `code_idx` (`code`),
  KEY `user_idx` (`user_id`),
  CONSTRAINT `orders_fk` FOREIGN KEY (`user_id`) REFERENCES `users` (`id`)
) ENGINE=InnoDB;
"""


class TestMySQLDumpParser:

    def setup_method(self):
        self.parser = MySQLDumpParser()

    def test_create_table_columns(self):
        [statement] = self.parser.parse(CREATE_USERS)
        assert isinstance(statement, CreateTable)
        assert statement.table == "users"
        assert [c.name for c in statement.columns] == ["id", "name", "active"]

        id_col, name_col, active_col = statement.columns
        assert id_col.type == TypeSpec("bigint")
        assert id_col.not_null
        assert id_col.auto_increment
        assert name_col.type == TypeSpec("varchar", [40])
        assert name_col.has_default
        assert active_col.type == TypeSpec("tinyint", [1])
        assert not active_col.not_null

    def test_create_table_primary_key(self):
        [statement] = self.parser.parse(CREATE_USERS)
        [pk] = statement.constraints
        assert isinstance(pk, PrimaryKeySpec)
        assert [k.column for k in pk.keys] == ["id"]

    def test_create_table_keys_and_foreign_key(self):
        [statement] = self.parser.parse(CREATE_ORDERS)
        kinds = [type(c) for c in statement.constraints]
        assert kinds.count(PrimaryKeySpec) == 1
        assert kinds.count(IndexSpec) == 2
        assert kinds.count(ForeignKeySpec) == 1

        indexes = {c.name: c for c in statement.constraints if isinstance(c, IndexSpec)}
        assert indexes["code_idx"].unique
        assert not indexes["user_idx"].unique
        assert [k.column for k in indexes["user_idx"].keys] == ["user_id"]

        [fk] = [c for c in statement.constraints if isinstance(c, ForeignKeySpec)]
        assert fk.columns == ["user_id"]
        assert fk.refer_table == "users"
        assert fk.refer_columns == ["id"]

    def test_alter_table_add_primary_key(self):
        [statement] = self.parser.parse(
            "ALTER TABLE cart ADD CONSTRAINT pk PRIMARY KEY (productid, userid);"
        )
        assert isinstance(statement, AlterTable)
        assert statement.table == "cart"
        [pk] = statement.specs
        assert isinstance(pk, PrimaryKeySpec)
        assert [k.column for k in pk.keys] == ["productid", "userid"]

    def test_alter_table_add_foreign_key(self):
        [statement] = self.parser.parse(
            "ALTER TABLE orders ADD CONSTRAINT fk_user FOREIGN KEY (user_id) "
            "REFERENCES users (id) ON DELETE CASCADE;"
        )
        [fk] = statement.specs
        assert isinstance(fk, ForeignKeySpec)
        assert fk.name == "fk_user"
        assert fk.columns == ["user_id"]
        assert fk.refer_table == "users"
        assert fk.on_delete == "CASCADE"

    def test_alter_table_modify_column(self):
        [statement] = self.parser.parse("ALTER TABLE t MODIFY b text NOT NULL;")
        assert statement.table == "t"
        [spec] = statement.specs
        assert isinstance(spec, ModifyColumnSpec)
        assert spec.column.name == "b"
        assert spec.column.type == TypeSpec("text")
        assert spec.column.not_null

    def test_create_index(self):
        [statement] = self.parser.parse("CREATE UNIQUE INDEX idx_name ON users (name);")
        assert isinstance(statement, CreateIndex)
        assert statement.table == "users"
        assert statement.index.name == "idx_name"
        assert statement.index.unique
        assert [k.column for k in statement.index.keys] == ["name"]

    def test_insert_values(self):
        [statement] = self.parser.parse(
            "INSERT INTO `users` VALUES (1,'bob',NULL),(-2,'it''s',1);"
        )
        assert isinstance(statement, Insert)
        assert statement.table == "users"
        assert statement.columns == []
        assert statement.rows == [["1", "bob", NULL_SENTINEL], ["-2", "it's", "1"]]

    def test_insert_with_columns(self):
        [statement] = self.parser.parse("INSERT INTO t (a, b) VALUES (1, 'x');")
        assert statement.columns == ["a", "b"]
        assert statement.rows == [["1", "x"]]

    def test_insert_rejects_expressions(self):
        with pytest.raises(ParseError):
            self.parser.parse("INSERT INTO t VALUES (bad);")

    def test_insert_rejects_arity_mismatch(self):
        with pytest.raises(ParseError):
            self.parser.parse("INSERT INTO t VALUES (1,2),(3);")

    def test_unterminated_insert_is_rejected(self):
        with pytest.raises(ParseError):
            self.parser.parse("INSERT INTO t VALUES ('a;\n")

    def test_several_statements(self):
        statements = self.parser.parse("DROP TABLE IF EXISTS `t`;\nCREATE TABLE t (a int);\n")
        assert isinstance(statements[0], Other)
        assert isinstance(statements[1], CreateTable)

    def test_session_statements_pass_through(self):
        statements = self.parser.parse("LOCK TABLES `t` WRITE;\nUNLOCK TABLES;\n")
        assert len(statements) == 2
        assert all(isinstance(s, Other) for s in statements)

    def test_set_time_zone_in_conditional_comment(self):
        [statement] = self.parser.parse("/*!40103 SET TIME_ZONE='+00:00' */;\n")
        assert isinstance(statement, SetVariable)
        assert statement.name.upper() == "TIME_ZONE"
        assert statement.value == "+00:00"

    def test_delimiter_rejected(self):
        with pytest.raises(ParseError, match="DELIMITER"):
            self.parser.parse("DELIMITER ;;\n")

    def test_routine_rejected(self):
        with pytest.raises(ParseError, match="PROCEDURE"):
            self.parser.parse("CREATE DEFINER=`root`@`localhost` PROCEDURE p() BEGIN SELECT 1; END")

    def test_spatial_column_rejected(self):
        with pytest.raises(ParseError, match="point"):
            self.parser.parse("CREATE TABLE g (id int, loc point NOT NULL);")

    def test_expand_conditional_comments(self):
        assert expand_conditional_comments("/*!40101 SET NAMES utf8 */;") == "SET NAMES utf8 ;"
        assert expand_conditional_comments("/* plain */") == "/* plain */"


class TestChunkerWithMySQL:

    def test_spatial_column_mapped_to_text(self):
        chunker, statements = chunk(
            "CREATE TABLE `g` (\n  `id` int,\n  `loc` point\n);\n", MySQLDumpParser()
        )
        [statement] = statements
        assert [c.type.name for c in statement.columns] == ["int", "text"]
        assert chunker.stats.notes

    def test_string_spanning_lines(self):
        chunker, statements = chunk(
            "INSERT INTO t VALUES ('a;\nb'),('c');\n", MySQLDumpParser()
        )
        [statement] = statements
        assert statement.rows == [["a;\nb"], ["c"]]
        assert chunker.stats.reparsed == 1

    def test_malformed_tuple_skipped(self):
        chunker, statements = chunk(
            "INSERT INTO t VALUES (1,2,3),(bad),(4,5,6);\n", MySQLDumpParser()
        )
        assert [s.rows for s in statements] == [[["1", "2", "3"]], [["4", "5", "6"]]]
        assert chunker.stats.skipped == {"insert": 1}

    def test_statement_before_bad_insert_kept(self):
        chunker, statements = chunk(
            "CREATE TABLE t (a int, b int); INSERT INTO t VALUES (1,2),(bad),(3,4);\n",
            MySQLDumpParser(),
        )
        assert [type(s) for s in statements] == [CreateTable, Insert, Insert]
        assert statements[0].table == "t"
        assert [s.rows for s in statements[1:]] == [[["1", "2"]], [["3", "4"]]]
        assert chunker.stats.skipped == {"insert": 1}

    def test_stored_procedure_skipped(self):
        text = (
            "DELIMITER ;;\n"
            "CREATE DEFINER=`root`@`%` PROCEDURE p()\n"
            "BEGIN\n"
            "  SELECT 1;\n"
            "END ;;\n"
            "DELIMITER ;\n"
            "CREATE TABLE t (a int);\n"
        )
        chunker, statements = chunk(text, MySQLDumpParser())
        assert [type(s) for s in statements] == [CreateTable]
        assert chunker.stats.skipped == {"create_procedure": 1}
