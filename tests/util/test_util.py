# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause

import logging
import unittest

from macrolens import util


class TestArguments(unittest.TestCase):
    """
    Test splitting of argument lists.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_nested(self):
        """Check commas inside parentheses do not split arguments"""
        text = 'FOO(a, (b, c), "x,)")'
        arguments = util.split_arguments(text, 3)
        self.assertEqual(arguments.args, ["a", "(b, c)", '"x,)"'])
        self.assertEqual(arguments.end_index, len(text))

    def test_empty(self):
        """Check an empty argument list has no arguments"""
        self.assertEqual(util.split_arguments("FOO()", 3).args, [])
        self.assertEqual(util.split_arguments("FOO(  )", 3).args, [])
        self.assertEqual(util.split_arguments("FOO(a,)", 3).args, ["a", ""])

    def test_spans(self):
        """Check argument spans point at the trimmed arguments"""
        text = "F( x , yy )"
        arguments = util.split_arguments(text, 1)
        self.assertEqual(
            [text[s:e] for s, e in arguments.spans],
            ["x", "yy"],
        )

    def test_failure(self):
        """Check unterminated and misplaced argument lists"""
        self.assertIsNone(util.split_arguments("FOO(a, b", 3))
        self.assertIsNone(util.split_arguments("FOO(a)", 0))
        self.assertIsNone(util.split_arguments("FOO", 3))


class TestLiterals(unittest.TestCase):
    """
    Test string literal detection and nesting depth.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_ranges(self):
        """Check string and character literals are found"""
        text = "a \"b\\\"c\" 'd'"
        self.assertEqual(util.string_literal_ranges(text), [(2, 8), (9, 12)])
        self.assertTrue(util.in_ranges(4, [(2, 8), (9, 12)]))
        self.assertFalse(util.in_ranges(8, [(2, 8), (9, 12)]))
        self.assertFalse(util.in_ranges(0, []))

    def test_balance(self):
        """Check parentheses inside literals are ignored"""
        self.assertTrue(util.is_balanced('("(" + x)'))
        self.assertFalse(util.is_balanced("(a"))
        self.assertFalse(util.is_balanced(")("))
        self.assertEqual(util.nesting_depth("FOO(BAR("), 2)
        self.assertEqual(util.nesting_depth("FOO(BAR())"), 0)

    def test_fully_wrapped(self):
        """Check detection of a single parenthesized group"""
        self.assertTrue(util.is_fully_wrapped("(a + b)"))
        self.assertFalse(util.is_fully_wrapped("(a) + (b)"))
        self.assertFalse(util.is_fully_wrapped("a"))

    def test_macro_name(self):
        """Check macro-like names"""
        self.assertTrue(util.is_macro_name("MAX_SIZE"))
        self.assertTrue(util.is_macro_name("_X1"))
        self.assertFalse(util.is_macro_name("max"))
        self.assertFalse(util.is_macro_name("1X"))


class TestInvocations(unittest.TestCase):
    """
    Test discovery of macro invocations.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_find_invocations(self):
        """Check calls and uses are found with their depth"""
        text = "DOUBLE(SQUARE(3)) + X"
        found = util.find_invocations(text)
        names = [inv.name for inv in found]
        self.assertEqual(names, ["DOUBLE", "SQUARE", "X"])
        self.assertEqual([inv.depth for inv in found], [0, 1, 0])
        self.assertEqual(found[0].args, ["SQUARE(3)"])
        self.assertEqual(found[0].arg_spans, [(7, 16)])
        self.assertIsNone(found[2].args)
        self.assertEqual(found[1].spelling(), "SQUARE(3)")

    def test_literals_skipped(self):
        """Check names inside string literals are not invocations"""
        found = util.find_invocations('puts("FOO(1)") + BAR')
        self.assertEqual([inv.name for inv in found], ["puts", "BAR"])

    def test_at_position(self):
        """Check the invocation covering an offset is found"""
        text = "x = ADD(FOO, 2);  "
        self.assertEqual(
            util.find_macro_at_position(text, 5),
            util.MacroCall("ADD", ["FOO", "2"]),
        )
        self.assertEqual(
            util.find_macro_at_position(text, 0),
            util.MacroCall("x", None),
        )
        self.assertIsNone(util.find_macro_at_position(text, 17))

    def test_half_typed_call(self):
        """Check an unterminated call is never matched as a call"""
        call = util.find_macro_at_position("ADD(1, ", 1)
        self.assertIsNone(call)


class TestStripParentheses(unittest.TestCase):
    """
    Test removal of redundant parentheses.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_single_layer_kept(self):
        """Check one layer of parentheses is kept"""
        self.assertEqual(util.strip_parentheses("(a)"), "(a)")
        self.assertEqual(util.strip_parentheses("a"), "a")
        self.assertEqual(util.strip_parentheses("()"), "()")

    def test_redundant_layers(self):
        """Check redundant layers are removed"""
        self.assertEqual(util.strip_parentheses("(((a)))"), "(a)")
        self.assertEqual(
            util.strip_parentheses("(2*(((3)*(3))))"),
            "(2*((3)*(3)))",
        )
        self.assertEqual(
            util.strip_parentheses("((a + b)) * ((c))"),
            "(a + b) * (c)",
        )
        self.assertEqual(
            util.strip_parentheses("func((a), (b))"),
            "func((a), (b))",
        )

    def test_interior_whitespace(self):
        """Check whitespace inside a kept group is preserved"""
        self.assertEqual(util.strip_parentheses("f(a, )"), "f(a, )")
        self.assertEqual(util.strip_parentheses("( a + b )"), "( a + b )")
        self.assertEqual(util.strip_parentheses("(( a ))"), "( a )")
        self.assertEqual(util.strip_parentheses("( (a) )"), "(a)")
        self.assertEqual(util.strip_parentheses("g( )"), "g( )")

    def test_unbalanced(self):
        """Check unbalanced text is returned unchanged"""
        for text in ["((a)", "(a))", "((((((", "))))))", ")a("]:
            self.assertEqual(util.strip_parentheses(text), text)

    def test_literals(self):
        """Check parentheses inside literals are never touched"""
        text = '"(((" + ((x))'
        self.assertEqual(util.strip_parentheses(text), '"(((" + (x)')

    def test_idempotent(self):
        """Check stripping twice changes nothing"""
        for text in ["(((a)))", "((a + b)) * ((c))", "f(((x)), ((y)))"]:
            once = util.strip_parentheses(text)
            self.assertEqual(util.strip_parentheses(once), once)


if __name__ == "__main__":
    unittest.main()
