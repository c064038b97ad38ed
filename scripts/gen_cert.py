# scripts/gen_cert.py
"""
Issue a TLS certificate signed by a root CA.
Usage: python scripts/gen_cert.py --ca-key MyCA.key --ca-cert MyCA.crt --cn api.example.com \
           [--san api.example.com --san 10.0.0.5] [--years 1] [--pfx-password [VALUE]]
Produces <derived>.key, <derived>.csr, <derived>.crt (and <derived>.pfx),
where <derived> is the common name with non-alphanumerics turned into hyphens.
"""
import sys, os
# Add project root to Python path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from caforge.cli import issue_cert_main

if __name__ == "__main__":
    sys.exit(issue_cert_main())
