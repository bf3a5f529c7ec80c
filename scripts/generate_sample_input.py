"""Generate sample input data and job files for trying out the loader.

Creates a delimited orders file, a JSON orders file and a matching job
definition in ``data/input/``. A few records carry negative amounts (caught
by post-load validation) or malformed fields (rejected during mapping).

Usage:
    python scripts/generate_sample_input.py
    python scripts/generate_sample_input.py --output-dir /custom/path --orders 500
    dataload run data/input/orders_job.yaml
"""

import argparse
import csv
import json
import os
import random
from datetime import datetime, timedelta

import yaml

STATUSES = ["pending", "shipped", "delivered", "refunded"]


def _order(order_id: int, base_date: datetime) -> dict:
    order_date = base_date + timedelta(days=random.randint(0, 30))
    return {
        "order_id": order_id,
        "customer_id": f"C-{random.randint(1, 50):03d}",
        "order_date": order_date.strftime("%Y-%m-%d"),
        "amount": round(random.uniform(5.0, 500.0), 2),
        "status": random.choice(STATUSES),
    }


def _spoil(orders: list, negative: int, malformed: int) -> None:
    picks = random.sample(range(len(orders)), min(len(orders), negative + malformed))
    for n, index in enumerate(picks):
        if n < negative:
            orders[index]["amount"] = -orders[index]["amount"]
        else:
            orders[index][random.choice(["order_id", "order_date", "amount"])] = "n/a"


def generate_orders_file(
    output_dir: str,
    count: int = 100,
    negative: int = 3,
    malformed: int = 2,
    field_terminator: str = "|",
) -> str:
    """Generate a delimited orders file with a header row.

    Args:
        output_dir: Target directory.
        count: Number of order records.
        negative: Records given a negative amount.
        malformed: Records given an unparseable field.
        field_terminator: Field separator.

    Returns:
        Path to the generated file.
    """
    orders = [_order(1000 + i, datetime(2024, 1, 1)) for i in range(1, count + 1)]
    _spoil(orders, negative, malformed)

    file_path = os.path.join(output_dir, "orders.dat")
    with open(file_path, "w", newline="") as f:
        writer = csv.writer(f, delimiter=field_terminator)
        writer.writerow(["order_id", "customer_id", "order_date", "amount", "status"])
        for order in orders:
            writer.writerow(order.values())

    print(f"Generated {count} orders -> {file_path}")
    return file_path


def generate_orders_json(output_dir: str, count: int = 50, negative: int = 1, malformed: int = 1) -> str:
    """Generate a newline-delimited JSON orders file."""
    orders = [_order(5000 + i, datetime(2024, 2, 1)) for i in range(1, count + 1)]
    _spoil(orders, negative, malformed)

    file_path = os.path.join(output_dir, "orders.jsonl")
    with open(file_path, "w") as f:
        for order in orders:
            f.write(json.dumps(order) + "\n")

    print(f"Generated {count} orders -> {file_path}")
    return file_path


def generate_job(output_dir: str, data_file: str, field_terminator: str = "|") -> str:
    """Write a job definition that loads ``data_file`` into ``orders``."""
    job = {
        "name": "sample_orders",
        "source": {
            "type": "delimited",
            "path": os.path.basename(data_file),
            "field_terminator": field_terminator,
            "first_row": 2,
        },
        "target": {"table": "orders", "mode": "bulk", "load_mode": "replace"},
        "schema": {
            "fields": [
                {"name": "order_id", "type": "integer", "nullable": False},
                {"name": "customer_id", "type": "string", "max_length": 16},
                {"name": "order_date", "type": "date"},
                {"name": "amount", "type": "decimal", "precision": 10, "scale": 2},
                {"name": "status", "type": "string"},
            ]
        },
        "validation": {
            "predicates": [
                {"description": "Amount must not be negative", "condition": "amount >= 0"},
            ],
            "checks": [
                {"description": "Orders were loaded", "sql": "SELECT COUNT(*) FROM orders", "min_threshold": 1},
            ],
        },
        "max_errors": 10,
    }

    file_path = os.path.join(output_dir, "orders_job.yaml")
    with open(file_path, "w") as f:
        yaml.safe_dump(job, f, sort_keys=False)

    print(f"Generated job definition -> {file_path}")
    return file_path


def main():
    parser = argparse.ArgumentParser(
        description="Generate sample input data for the loader"
    )
    parser.add_argument(
        "--output-dir",
        default=os.path.join(os.path.dirname(__file__), "..", "data", "input"),
        help="Output directory for generated files (default: data/input/)",
    )
    parser.add_argument(
        "--orders", type=int, default=100, help="Number of delimited order records"
    )
    parser.add_argument(
        "--json-orders", type=int, default=50, help="Number of JSON order records"
    )
    parser.add_argument(
        "--seed", type=int, default=None, help="Random seed for repeatable output"
    )
    args = parser.parse_args()

    if args.seed is not None:
        random.seed(args.seed)

    output_dir = os.path.abspath(args.output_dir)
    os.makedirs(output_dir, exist_ok=True)

    print(f"Generating sample data in {output_dir}")
    print()

    data_file = generate_orders_file(output_dir, args.orders)
    generate_orders_json(output_dir, args.json_orders)
    generate_job(output_dir, data_file)

    print()
    print("Sample data generation complete!")


if __name__ == "__main__":
    main()
