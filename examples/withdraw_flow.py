#!/usr/bin/env python3
"""Withdraw Flow Example

Walks through an LNURL-withdraw against a remote gateway:
1. Remember the remote endpoint (normalized, saved to .env)
2. GET /withdraw-request for a fresh k1 + callback
3. Call the callback with a destination address and an optional amount

Usage:
    python examples/withdraw_flow.py <endpoint> <btc-address> [amount-sat]
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add parent directory to path for local development
sys.path.insert(0, str(Path(__file__).parent.parent))

from ln_gateway_dash import EndpointStore, GatewayConfig, RemoteSession
from ln_gateway_dash.types import GatewayError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)


async def main(endpoint: str, destination: str, amount: str | None) -> None:
    config = GatewayConfig.from_env()
    store = EndpointStore(config.env_file, default_scheme=config.default_scheme)

    async with RemoteSession(store) as session:
        print(f"🌐 Remote endpoint: {await session.set_endpoint(endpoint)}")

        flow = session.withdraw
        request = await flow.create_request()
        print(f"📝 k1: {request['k1']}")
        print(f"   callback: {request['callback']}")

        try:
            response = await flow.invoke_callback(destination, amount)
        except GatewayError as e:
            print(f"❌ Callback failed: {e}")
            return
        print(f"✅ Callback response: {response}")


if __name__ == "__main__":
    if len(sys.argv) < 3:
        print(__doc__)
        sys.exit(1)
    asyncio.run(main(sys.argv[1], sys.argv[2], sys.argv[3] if len(sys.argv) > 3 else None))
