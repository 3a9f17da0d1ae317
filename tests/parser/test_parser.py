# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause

import logging
import unittest

from macrolens.parser import UNBALANCED_MARKER, MacroRecord, parse


def _names(records):
    return [r.name for r in records]


class TestDefines(unittest.TestCase):
    """
    Test parsing of #define directives.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_object_like(self):
        """Check object-like macros"""
        (record,) = parse("#define MAX_SIZE 100", "test.h")
        self.assertEqual(record.name, "MAX_SIZE")
        self.assertIsNone(record.parameters)
        self.assertEqual(record.body, "100")
        self.assertEqual(record.source_file, "test.h")
        self.assertEqual(record.source_line, 1)
        self.assertTrue(record.is_macro_definition)
        self.assertFalse(record.is_function_like)

    def test_space_sensitivity(self):
        """Check only an adjacent '(' starts a parameter list"""
        text = "#define FUNC(x) ((x)+1)\n#define OBJ (x) ((x)+1)\n"
        func, obj = parse(text, "test.h")
        self.assertEqual(func.parameters, ("x",))
        self.assertEqual(func.body, "((x)+1)")
        self.assertIsNone(obj.parameters)
        self.assertEqual(obj.body, "(x) ((x)+1)")

    def test_empty(self):
        """Check definitions without a body or parameters"""
        empty, call = parse("#define EMPTY\n#define CALL() 10\n", "test.h")
        self.assertEqual(empty.body, "")
        self.assertEqual(call.parameters, ())
        self.assertTrue(call.is_function_like)
        self.assertEqual(call.spelling(), "#define CALL() 10")

    def test_whitespace(self):
        """Check directive spacing and comments"""
        text = "  #  define   X   1 /* one */\n#define Y  a   +   b // sum\n"
        x, y = parse(text, "test.h")
        self.assertEqual(x.body, "1")
        self.assertEqual(y.body, "a + b")

    def test_multiline(self):
        """Check continued definitions use their first line"""
        text = (
            "\n"
            "#define LONG(a, b) \\\n"
            "    ((a) + \\\n"
            "     (b))\n"
            "#define NEXT 1\n"
        )
        long, after = parse(text, "test.h")
        self.assertEqual(long.source_line, 2)
        self.assertEqual(long.parameters, ("a", "b"))
        self.assertEqual(long.body, "((a) + (b))")
        self.assertEqual(after.source_line, 5)

    def test_crlf(self):
        """Check Windows line endings are not part of bodies"""
        a, b = parse("#define A 1\r\n#define B 2\r\n", "test.h")
        self.assertEqual((a.body, b.body), ("1", "2"))

    def test_variadic(self):
        """Check variadic parameter lists"""
        text = (
            "#define LOG(fmt, ...) printf(fmt, __VA_ARGS__)\n"
            "#define GNU(args...) f(args)\n"
            "#define ADD(a, b) ((a)+(b))\n"
        )
        log, gnu, add = parse(text, "test.h")
        self.assertTrue(log.is_variadic)
        self.assertEqual(log.fixed_parameters, ("fmt",))
        self.assertEqual(log.variadic_name, "__VA_ARGS__")
        self.assertTrue(gnu.is_variadic)
        self.assertEqual(gnu.fixed_parameters, ())
        self.assertEqual(gnu.variadic_name, "args")
        self.assertFalse(add.is_variadic)
        self.assertIsNone(add.variadic_name)

    def test_spelling(self):
        """Check definitions are rendered consistently"""
        (record,) = parse("#define ADD(a,b)   ((a)+(b))", "test.h")
        self.assertEqual(record.spelling(), "#define ADD(a, b) ((a)+(b))")


class TestUnbalanced(unittest.TestCase):
    """
    Test recording of malformed definitions.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_body(self):
        """Check bodies with unbalanced parentheses are marked"""
        (record,) = parse("#define E (((x) * 2)", "test.h")
        self.assertTrue(record.is_unbalanced)
        self.assertTrue(record.body.startswith(UNBALANCED_MARKER))
        self.assertEqual(record.display_body, "(((x) * 2)")
        self.assertEqual(record.spelling(), "#define E (((x) * 2)")

    def test_parameter_list(self):
        """Check malformed parameter lists are marked"""
        text = (
            "#define MISSING_CLOSE(a, b (a+b)\n"
            "#define EXTRA_CLOSE(a, b)) (a+b)\n"
        )
        missing, extra = parse(text, "test.h")
        self.assertTrue(missing.is_unbalanced)
        self.assertIsNone(missing.parameters)
        self.assertTrue(extra.is_unbalanced)
        self.assertEqual(extra.parameters, ("a", "b"))

    def test_literals(self):
        """Check parentheses inside literals do not count"""
        (record,) = parse('#define H "text with ) paren"', "test.h")
        self.assertFalse(record.is_unbalanced)

    def test_backslash_space(self):
        """Check a backslash followed by spaces still continues"""
        text = "#define B \\ \n(((a)) + (b)))\n#define C 1\n"
        b, c = parse(text, "test.h")
        self.assertEqual(b.source_line, 1)
        self.assertTrue(b.is_unbalanced)
        self.assertEqual(b.display_body, "(((a)) + (b)))")
        self.assertEqual(c.source_line, 3)


class TestTypes(unittest.TestCase):
    """
    Test recording of type declarations.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_typedef(self):
        """Check every name declared by a typedef is recorded"""
        records = parse("typedef struct a A, *A_PTR;", "test.h")
        self.assertEqual(_names(records), ["A", "A_PTR"])
        for record in records:
            self.assertFalse(record.is_macro_definition)
            self.assertIsNone(record.parameters)

    def test_multiline_typedef(self):
        """Check members of a typedef are not recorded"""
        text = (
            "typedef struct {\n"
            "    int X_MEMBER;\n"
            "    char BUF[SIZE];\n"
            "} MY_T;\n"
            "#define AFTER 1\n"
        )
        records = parse(text, "test.h")
        self.assertEqual(_names(records), ["MY_T", "AFTER"])
        self.assertEqual(records[0].source_line, 1)
        self.assertEqual(records[1].source_line, 5)

    def test_struct_union(self):
        """Check struct and union declarations"""
        text = "struct POINT {\n int x;\n};\nunion VALUE;\nstruct lower;\n"
        self.assertEqual(_names(parse(text, "test.h")), ["POINT", "VALUE"])

    def test_enum(self):
        """Check enum names and constants"""
        text = (
            "enum COLOR { RED = 0, GREEN, BLUE };\n"
            "enum {\n"
            "    ONE,\n"
            "    TWO = 2\n"
            "};\n"
        )
        records = parse(text, "test.h")
        self.assertEqual(
            _names(records),
            ["COLOR", "RED", "GREEN", "BLUE", "ONE", "TWO"],
        )
        self.assertEqual(records[-1].source_line, 2)

    def test_enum_variable(self):
        """Check enum variables and forward declarations end at once"""
        text = "enum COLOR c;\n#define AFTER 1\nenum SHAPE\n#define NEXT 2\n"
        records = parse(text, "test.h")
        self.assertEqual(_names(records), ["COLOR", "AFTER", "SHAPE", "NEXT"])
        self.assertEqual(records[3].source_line, 4)

    def test_disabled(self):
        """Check type detection can be disabled"""
        text = "typedef int MY_INT;\nenum { ONE };\n#define X 1\n"
        records = parse(text, "test.h", detect_types=False)
        self.assertEqual(_names(records), ["X"])


class TestAccepts(unittest.TestCase):
    """
    Test the argument contract of definitions.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_object_like(self):
        """Check object-like macros cannot be called"""
        record = MacroRecord("N", None, "1", "test.h", 1)
        self.assertTrue(record.accepts(None))
        self.assertFalse(record.accepts([]))

    def test_function_like(self):
        """Check the number of arguments"""
        record = MacroRecord("ADD", ("a", "b"), "a+b", "test.h", 1)
        self.assertTrue(record.accepts(["1", "2"]))
        self.assertFalse(record.accepts(["1"]))
        self.assertFalse(record.accepts(None))

        single = MacroRecord("ID", ("x",), "x", "test.h", 1)
        self.assertTrue(single.accepts([]))

    def test_variadic(self):
        """Check variadic macros need only their fixed parameters"""
        record = MacroRecord("LOG", ("fmt", "..."), "", "test.h", 1)
        self.assertTrue(record.accepts(["f"]))
        self.assertTrue(record.accepts(["f", "1", "2"]))
        self.assertFalse(record.accepts([]))


if __name__ == "__main__":
    unittest.main()
