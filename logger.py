import os
import datetime
import json


class Logger:
    """
    Plain-text log for one filter run, written to <log_dir>/<timestamp>.log.
    """

    def __init__(self, log_dir="logs"):
        os.makedirs(log_dir, exist_ok=True)

        self.start_time = datetime.datetime.now()
        self.run_timestamp = self.start_time.strftime("%Y%m%d-%H%M%S")
        self.log_filepath = os.path.join(log_dir, f"{self.run_timestamp}.log")

    def _write(self, message: str):
        with open(self.log_filepath, 'a', encoding='utf-8') as f:
            f.write(message + '\n')

    def log(self, message: str):
        timestamp = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        self._write(f"[{timestamp}] {message}")

    def log_config(self, filter_config):
        self.log("Filter configuration:")
        try:
            self._write(json.dumps(filter_config.to_dict(), indent=2))
        except (TypeError, ValueError, AttributeError) as e:
            self.log(f"Could not serialize filter config: {e}")

    def log_image(self, label: str, buffer):
        height, width = buffer.shape[:2]
        channels = buffer.shape[2] if buffer.ndim == 3 else 1
        self.log(f"{label}: {width}x{height}, {channels} channel(s)")

    def log_pass(self, pass_index: int, pass_count: int, blended: int, total_pixels: int, elapsed: float):
        share = 100.0 * blended / total_pixels if total_pixels else 0.0
        self.log(f"Pass {pass_index}/{pass_count}: blended {blended} of {total_pixels} pixel(s) "
                 f"({share:.1f}%) in {elapsed:.3f}s")

    def log_total_time(self):
        duration = datetime.datetime.now() - self.start_time
        self.log(f"Total execution time: {duration}")
