# run_logger.py

"""
Keeps a history of FXAA runs in a JSON Lines file.
Each line in the log file is a JSON object describing a single run.
"""

import json
import os
from datetime import datetime
from typing import Dict, Any


def log_run(log_filepath: str, run_index: int, input_path: str, output_path: str,
            config_data: Dict[str, Any]) -> None:
    """
    Appends the details of a filter run to the run log.

    Args:
        log_filepath (str): The JSON Lines file to append to.
        run_index (int): The serial/index number for this run.
        input_path (str): Image the run read.
        output_path (str): Image the run wrote.
        config_data (Dict[str, Any]): FilterConfig.to_dict() of the run.
    """
    # Ensure the directory for the log file exists
    os.makedirs(os.path.dirname(log_filepath) or ".", exist_ok=True)

    log_entry = {
        "run_index": run_index,
        "timestamp": datetime.now().isoformat(),
        "input": input_path,
        "output": output_path,
        "config": config_data
    }

    with open(log_filepath, 'a', encoding='utf-8') as f:
        json.dump(log_entry, f)
        f.write('\n')  # Add a newline to make it JSON Lines


def get_last_run_index(log_filepath: str) -> int:
    """
    Reads the run log to determine the last used run index.
    Returns 0 if the file does not exist or holds no valid entries.
    """
    last_index = 0
    if not os.path.exists(log_filepath):
        return last_index

    with open(log_filepath, 'r', encoding='utf-8') as f:
        for line in f:
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except json.JSONDecodeError:
                print(f"Warning: Skipping malformed line in run log: {line.strip()}")
                continue
            if "run_index" in entry:
                last_index = max(last_index, int(entry["run_index"]))
    return last_index
