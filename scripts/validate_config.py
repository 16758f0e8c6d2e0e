#!/usr/bin/env python3
"""Configuration validation script."""

import sys
from pathlib import Path
from typing import List, Optional

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from continuum_app.config.loader import ConfigLoader, config_from_dict
from continuum_app.config.validation import ConfigValidator, ValidationError


def validate_settings(loader: ConfigLoader, overrides: Optional[dict] = None) -> List[ValidationError]:
    """Validate the merged configuration, optionally with stored overrides."""
    config = loader.merge_config(overrides)
    return ConfigValidator.validate_config(config)


def report(label: str, errors: List[ValidationError]) -> bool:
    if errors:
        print(f"❌ {label}: {len(errors)} validation errors")
        for error in errors:
            print(f"  • {error.field}: {error.message} (value: {error.value})")
        return False
    print(f"✅ {label} is valid")
    return True


def main():
    """Main validation function."""
    print("🔍 Validating Continuum configuration...")

    config_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    loader = ConfigLoader.create(config_dir)
    print(f"📁 Config directory: {loader.config_dir}")

    all_valid = report("settings.yaml", validate_settings(loader))

    # Stored overrides as the engine would persist them
    print("\n📋 Testing stored overrides...")
    test_overrides = {
        "period": {"theme": "work", "category": "development", "tags": ["focus"]},
        "timer": {"tick_interval_seconds": 0.5},
    }
    errors = validate_settings(loader, test_overrides)
    all_valid = report("Stored overrides", errors) and all_valid

    if all_valid:
        config = config_from_dict(loader.merge_config(test_overrides))
        print(f"  theme={config.period.theme} category={config.period.category} "
              f"tick={config.timer.tick_interval_seconds}s")

    if all_valid:
        print("\n🎉 All configuration validation passed!")
        sys.exit(0)
    else:
        print("\n❌ Configuration validation failed!")
        sys.exit(1)


if __name__ == "__main__":
    main()
