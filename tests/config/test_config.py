# Copyright (C) 2019-2024 Intel Corporation
# SPDX-License-Identifier: BSD-3-Clause

import logging
import os
import tempfile
import unittest

from macrolens.config import ExpansionConfig, ExpansionMode, load_config


class TestExpansionConfig(unittest.TestCase):
    """
    Test ExpansionConfig class.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def test_defaults(self):
        """Check default values"""
        config = ExpansionConfig()
        self.assertIs(config.expansion_mode, ExpansionMode.SINGLE_LAYER)
        self.assertEqual(config.max_expansion_depth, 30)
        self.assertTrue(config.strip_extra_parentheses)
        self.assertTrue(config.detect_type_declarations)
        self.assertTrue(config.hover_show_definition)

    def test_validation(self):
        """Check arguments are valid"""
        with self.assertRaises(ValueError):
            ExpansionConfig(max_expansion_depth=0)

        with self.assertRaises(ValueError):
            ExpansionConfig(max_expansion_depth=101)

        with self.assertRaises(TypeError):
            ExpansionConfig(max_expansion_depth="30")

        with self.assertRaises(TypeError):
            ExpansionConfig(max_expansion_depth=True)

        with self.assertRaises(TypeError):
            ExpansionConfig(strip_extra_parentheses="yes")

        with self.assertRaises(ValueError):
            ExpansionConfig(expansion_mode="everything")

    def test_bounds(self):
        """Check the depth limits are inclusive"""
        for depth in [1, 100]:
            config = ExpansionConfig(max_expansion_depth=depth)
            self.assertEqual(config.max_expansion_depth, depth)

    def test_from_dict(self):
        """Check both spellings of each option"""
        config = ExpansionConfig.from_dict(
            {
                "expansionMode": "single-macro",
                "max_expansion_depth": 10,
                "hoverShowDefinition": False,
            },
        )
        self.assertIs(config.expansion_mode, ExpansionMode.SINGLE_MACRO)
        self.assertEqual(config.max_expansion_depth, 10)
        self.assertFalse(config.hover_show_definition)

        with self.assertRaises(ValueError):
            ExpansionConfig.from_dict({"maxDepth": 10})

    def test_overrides(self):
        """Check overrides that are None are ignored"""
        config = ExpansionConfig().with_overrides(
            expansion_mode="single-macro",
            max_expansion_depth=None,
        )
        self.assertIs(config.expansion_mode, ExpansionMode.SINGLE_MACRO)
        self.assertEqual(config.max_expansion_depth, 30)

        with self.assertRaises(ValueError):
            ExpansionConfig().with_overrides(max_expansion_depth=1000)


class TestLoadConfig(unittest.TestCase):
    """
    Test loading configuration files.
    """

    @classmethod
    def setUpClass(self):
        logging.disable()

    def _load(self, text):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "macrolens.toml")
            with open(path, "w") as f:
                f.write(text)
            return load_config(path)

    def test_table(self):
        """Check options are read from the [macrolens] table"""
        config = self._load(
            "[macrolens]\n"
            'expansion_mode = "single-macro"\n'
            "stripExtraParentheses = false\n",
        )
        self.assertIs(config.expansion_mode, ExpansionMode.SINGLE_MACRO)
        self.assertFalse(config.strip_extra_parentheses)

    def test_top_level(self):
        """Check options are read from the top level without a table"""
        config = self._load("max_expansion_depth = 5\n")
        self.assertEqual(config.max_expansion_depth, 5)

    def test_invalid(self):
        """Check invalid files are rejected"""
        with self.assertRaises(ValueError):
            self._load("unknown = 1\n")

        with self.assertRaises(TypeError):
            self._load('macrolens = "oops"\n')

        with self.assertRaises(ValueError):
            self._load("this is not toml")


if __name__ == "__main__":
    unittest.main()
