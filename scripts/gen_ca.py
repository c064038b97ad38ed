# scripts/gen_ca.py
"""
Create a root CA. Writes into --out (default: current directory):
  <name>.key   (private)  -- DO NOT COMMIT
  <name>.crt   (public)
  <name>.pfx   only when --pfx-password is given
Usage: python scripts/gen_ca.py --name "My Root CA" [--years 10] [--pfx-password [VALUE]]
"""
import sys, os
# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from caforge.cli import create_ca_main

if __name__ == "__main__":
    sys.exit(create_ca_main())
