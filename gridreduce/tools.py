"""Collection of tools potentially used by multiple components of GRIDREDUCE.

This collection is characterized by a certain degree of generality and they cannot be
attributed to a specified component of gridreduce.
"""

import datetime
import logging
import operator
import os
import shutil
from functools import reduce
from pathlib import Path


def _process_record(record):
    """Add the seconds passed since the last log record, used with logaugment."""
    now = datetime.datetime.utcnow()
    try:
        delta = (now - _process_record.now).total_seconds()
    except AttributeError:
        delta = 0
    _process_record.now = now
    return {'time_since_last': delta}

class TimeSinceLastLog(logging.Handler):
    """A handler class which stores custom logrecord attribute for last log."""
    def __init__(self):
        super().__init__()
        self.value = 0
    def emit(self, record):
        self.value = getattr(record, "time_since_last", 0)

def create_folder_structure(base_path, logger=None):
    """Create folder structure to run GRIDREDUCE.

    The working directory is expected to contain a folder for the input data, the
    exported results, log files and option files (profiles). This function checks
    whether these exist and creates them if necessary.

    Parameters
    ----------
    base_path : pathlib.Path
        GRIDREDUCE working directory.
    logger : logger, optional
        If a logger is supplied the status messages will be logged there.

    """
    folder_structure = {
        "data_input": {},
        "data_output": {},
        "logs": {},
        "profiles": {},
    }
    if logger:
        logger.info("Creating Folder Structure")

    try:
        folder = folder_structure
        while folder:
            subfolder_dict = {}
            for subfolder in folder:
                if not Path.is_dir(base_path.joinpath(subfolder)):
                    if logger:
                        logger.info(f"creating folder {subfolder}")
                    Path.mkdir(base_path.joinpath(subfolder))
                if folder[subfolder]:
                    for subsubfolder in folder[subfolder]:
                        subfolder_dict[subfolder + "/" + subsubfolder] = folder[subfolder][subsubfolder]
            folder = subfolder_dict.copy()
    except OSError:
        if logger:
            logger.error("Could not create folder structure!")
        raise

def split_length_in_ranges(step_size, length):
    """Split a range 0:N in a list of ranges with specified length.

    The last range contains the remainder and is omitted if it would be empty.
    """
    step_size = int(step_size)
    if step_size <= 0:
        raise ValueError("step_size has to be a positive integer")
    if step_size >= length:
        return [range(0, length)]
    ranges = [range(i, min(i + step_size, length)) for i in range(0, length, step_size)]
    return ranges

def default_options():
    """Returns the default options of GRIDREDUCE."""
    options = {
        "title": "default",
        "case_study": "default",
        "data": {
            "base_mva": 100.0,
            "in_pu": False,
            "bus_names_as_int": False,
            },
        "sensitivity": {
            "reference_bus": None,
            "susceptance_tolerance": 1e-8,
            "ttc_epsilon": 1e-6,
            "workers": 1,
            "chunk_size": 1000,
            },
        "optimization": {
            "type": "QP",
            "lambda": 1e-6,
            "ptdf_epsilon": 1e-3,
            "bigM_factor": 5.0,
            "solver": "",
            "solver_options": {},
            },
        "output": {
            "suffix": "",
            "export": True,
        }
    }
    return options

# Options whose content is passed on as is, e.g. to the solver.
_FREE_FORM_OPTIONS = [("optimization", "solver_options")]

def add_default_values_to_dict(value_dict, default_dict):
    """Combines values from user dict with default values from default_dict.

    Parameters
    ----------
    value_dict : dict
        Dict with values.
    default_dict : dict
        Dict containing default values that are added if not present in value_dict.

    Raises
    ------
    ValueError
        If value_dict contains a key that is not part of default_dict.
    """
    for i in _dict_generator(value_dict):
        free_form = [list(option) for option in _FREE_FORM_OPTIONS if tuple(i[:len(option)]) == option]
        if free_form:
            _setInDict(default_dict, free_form[0], _getFromDict(value_dict, free_form[0]))
            continue
        try:
            parent = _getFromDict(default_dict, i[:-1])
        except (KeyError, TypeError):
            raise ValueError(".".join(map(str, i)) + " is not a valid option")
        if not isinstance(parent, dict) or i[-1] not in parent:
            raise ValueError(".".join(map(str, i)) + " is not a valid option")
        _setInDict(default_dict, i, _getFromDict(value_dict, i))
    return default_dict

def add_default_options(input_options):
    """Takes the loaded option dict and adds missing values from default options.

    Uses function that are a result from https://stackoverflow.com/a/14692747.

    Parameters
    ----------
    input_options : dict
        Optionfile from user input.
    """
    default_option_values = default_options()
    options = add_default_values_to_dict(input_options, default_option_values)
    return options

def _dict_generator(indict, pre=None):
    """Flatten Option Dict.

    Source: https://stackoverflow.com/a/12507546.
    """
    pre = pre[:] if pre else []
    if isinstance(indict, dict):
        for key, value in indict.items():
            if isinstance(value, dict) and value:
                for d in _dict_generator(value, pre + [key]):
                    yield d
            else:
                yield pre + [key]
    else:
        yield pre + [indict]

def _getFromDict(dataDict, mapList):
    return reduce(operator.getitem, mapList, dataDict)

def _setInDict(dataDict, mapList, value):
    _getFromDict(dataDict, mapList[:-1])[mapList[-1]] = value

def copytree(src, dst, symlinks=False, ignore=None):
    """Copy folder from src to dst.

    Utilizes the shutil.copytree function. Is based on
    https://stackoverflow.com/a/12514470

    Parameters
    ----------
    src : str/pathlib.Path
        Path to folder that is copied.
    dst : str/pathlib.Path
        Destination path of the copied folder.
    symlinks : bool, optional
        copytree option
    ignore : None, optional
        copytree option
    """
    for item in os.listdir(src):
        s = os.path.join(src, item)
        d = os.path.join(dst, item)
        if os.path.isdir(s):
            shutil.copytree(s, d, symlinks, ignore)
        else:
            shutil.copy2(s, d)

def print_timestep(start_time, logger, message=""):
    """Print seconds passed from reference timestep.

    Parameters
    ----------
    start_time : datetime.datetime
        Reference timestep.
    logger : logging.Logger
        Logger to print the message.
    message : string, optional
        Append Message.
    """
    logger.info("%s seconds passed since %s. %s" % ((datetime.datetime.now() - start_time).seconds,
                                                     start_time.strftime("%H:%M:%S"), message))
