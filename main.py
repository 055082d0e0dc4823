# cam_explainer/main.py

# Script entry point: python main.py IMAGE [IMAGE ...]
from cli.main import main

if __name__ == "__main__":
    main()
