import logging
import tempfile
import unittest
from pathlib import Path

from context import gridreduce
from gridreduce import tools


class TestTools(unittest.TestCase):

    def test_default_options(self):
        options = tools.add_default_options({})
        self.assertDictEqual(options, tools.default_options())
        self.assertEqual(options["optimization"]["type"], "QP")

    def test_add_default_options(self):
        options = tools.add_default_options({"case_study": "test",
                                             "optimization": {"type": "LP"},
                                             "sensitivity": {"reference_bus": 3}})
        self.assertEqual(options["case_study"], "test")
        self.assertEqual(options["optimization"]["type"], "LP")
        self.assertEqual(options["sensitivity"]["reference_bus"], 3)
        self.assertEqual(options["optimization"]["lambda"], 1e-6)
        self.assertEqual(options["data"]["base_mva"], 100)

    def test_invalid_option(self):
        with self.assertRaises(ValueError):
            tools.add_default_options({"not_an_option": 1})
        with self.assertRaises(ValueError):
            tools.add_default_options({"optimization": {"typo": "QP"}})
        with self.assertRaises(ValueError):
            tools.add_default_options({"title": {"subtitle": "x"}})

    def test_solver_options(self):
        options = tools.add_default_options({"optimization": {"solver": "SCIP",
                                                              "solver_options": {"verbose": True,
                                                                                 "scip_params": {"limits/time": 60}}}})
        self.assertDictEqual(options["optimization"]["solver_options"],
                             {"verbose": True, "scip_params": {"limits/time": 60}})

    def test_split_length_in_ranges(self):
        ranges = tools.split_length_in_ranges(4, 10)
        self.assertEqual([list(r) for r in ranges], [[0, 1, 2, 3], [4, 5, 6, 7], [8, 9]])
        self.assertEqual(tools.split_length_in_ranges(20, 10), [range(0, 10)])
        self.assertEqual(tools.split_length_in_ranges(5, 10), [range(0, 5), range(5, 10)])
        with self.assertRaises(ValueError):
            tools.split_length_in_ranges(0, 10)

    def test_create_folder_structure(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            wdir = Path(temp_dir)
            tools.create_folder_structure(wdir)
            for folder in ["data_input", "data_output", "logs", "profiles"]:
                self.assertTrue(wdir.joinpath(folder).is_dir())

    def test_time_since_last_log(self):
        logger = logging.getLogger('log.test_tools')
        logger.setLevel(logging.INFO)
        handler = tools.TimeSinceLastLog()
        logger.addHandler(handler)
        try:
            record = logger.makeRecord(logger.name, logging.INFO, __file__, 0, "msg", None, None,
                                       extra={"time_since_last": 2.5})
            logger.handle(record)
            self.assertEqual(handler.value, 2.5)
        finally:
            logger.removeHandler(handler)

    def test_process_record(self):
        tools._process_record(None)
        delta = tools._process_record(None)["time_since_last"]
        self.assertGreaterEqual(delta, 0)
        self.assertIsInstance(gridreduce.__version__, str)


if __name__ == '__main__':
    unittest.main()
