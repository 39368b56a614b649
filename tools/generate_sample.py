import logging
import os
import sys

# Allow running as `python tools/generate_sample.py` from the project root
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from resource_demand import compute, default_assumptions, default_distribution
import resource_demand_app as app

logger = logging.getLogger("generate_sample")

settings = app.load_settings()
app.configure_logging(settings.log_level)

assumptions = default_assumptions()
result = compute(assumptions, default_distribution())

logger.info(
    "Default scenario: hours=%s concurrency=%s peak=%s -> base %s + buffer %s = %s",
    result.hours_based_resources,
    result.concurrency_based_resources,
    result.peak_based_resources,
    result.base_requirement,
    result.safety_buffer,
    result.final_recommendation,
)

frame = app.monthly_frame(result)
csv_content = app.format_csv(
    app.frame_to_rows(frame),
    summary=app.summary_header(result, assumptions, title="Sample run"),
)

out_path = app.save_csv_to_disk(csv_content, filename="sample_test.csv", directory=settings.output_dir)
logger.info("Wrote sample CSV to: %s", out_path)
print("\nCSV head:\n")
print('\n'.join(csv_content.splitlines()[:40]))
