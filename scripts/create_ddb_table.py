#!/usr/bin/env python3
"""Create the DynamoDB table used by DynamoStorage."""
from __future__ import annotations

import argparse
import os
import sys

import boto3


def table_definition(table: str) -> dict:
    return {
        "TableName": table,
        "KeySchema": [
            {"AttributeName": "address", "KeyType": "HASH"},
            {"AttributeName": "seq", "KeyType": "RANGE"},
        ],
        "AttributeDefinitions": [
            {"AttributeName": "address", "AttributeType": "S"},
            {"AttributeName": "seq", "AttributeType": "S"},
        ],
        "BillingMode": "PAY_PER_REQUEST",
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Create the ethwatch transactions table.")
    parser.add_argument("--table", default=os.getenv("ETHWATCH_DDB_TABLE"), help="DynamoDB table name.")
    parser.add_argument("--region", default=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"))
    parser.add_argument("--wait", action="store_true", help="Block until the table is active.")
    args = parser.parse_args()

    if not args.table:
        raise SystemExit("Missing DynamoDB table name (set ETHWATCH_DDB_TABLE or --table).")

    client = boto3.client("dynamodb", region_name=args.region)
    print(f"[create] table={args.table} region={args.region}", flush=True)
    try:
        client.create_table(**table_definition(args.table))
    except client.exceptions.ResourceInUseException:
        print(f"[create] table {args.table} already exists", file=sys.stderr, flush=True)
        return
    if args.wait:
        client.get_waiter("table_exists").wait(TableName=args.table)
    print("[create] complete", flush=True)


if __name__ == "__main__":
    main()
