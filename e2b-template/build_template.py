#!/usr/bin/env python3
"""Build the nextjs-shadcn template used by the sandbox pool."""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from parent directory
load_dotenv(Path(__file__).parent.parent / ".env")

from e2b import Template, default_build_logger
from template import template


TEMPLATE_ALIAS = os.getenv("E2B_TEMPLATE", "nextjs-shadcn")


if __name__ == "__main__":
    print("=" * 60)
    print(f"  Building E2B template: {TEMPLATE_ALIAS}")
    print("=" * 60)
    print()
    print("This will take a few minutes on first build.")
    print("The template includes:")
    print("  - Node.js 20")
    print("  - Next.js 14 with TypeScript")
    print("  - Tailwind CSS")
    print("  - shadcn/ui components")
    print("  - lucide-react, framer-motion")
    print()

    Template.build(
        template,
        alias=TEMPLATE_ALIAS,
        cpu_count=2,
        memory_mb=4096,
        on_build_logs=default_build_logger(),
    )

    print()
    print("=" * 60)
    print(f"  Template '{TEMPLATE_ALIAS}' built successfully!")
    print("=" * 60)
    print()
    print("Use with:")
    print(f'   Sandbox.create(template="{TEMPLATE_ALIAS}")')
    print()
