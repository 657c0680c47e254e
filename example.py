import asyncio

from ln_gateway_dash import GatewayConfig, HealthPoller, LocalApi


async def main():
    config = GatewayConfig.from_env()
    async with LocalApi(config.api_base_url) as api:
        # One health poll
        state = await HealthPoller(api).poll()
        print(f"Gateway: {state.connection.state} ({state.connection.detail})")
        if state.latency_ms is not None:
            print(f"Latency: {state.latency_ms}ms")

        # Last few requests seen by the gateway
        for entry in await api.recent_requests(limit=5):
            print(f"{entry['status']} {entry['method']} {entry['path']}")


if __name__ == "__main__":
    asyncio.run(main())
