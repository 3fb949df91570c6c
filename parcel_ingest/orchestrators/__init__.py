"""Session orchestration — ``ImportSession`` drives one file from upload to apply."""
