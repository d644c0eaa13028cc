#!/usr/bin/env python3
"""
Script de prueba contra un Event Collector corriendo (por defecto localhost:3030)
"""
import asyncio
import os
import sys
import time
import uuid

import aiohttp

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_1 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.1 Mobile/15E148 Safari/604.1"
)


async def check(session, name, method, url, expected_status, expected_text=None, **kwargs):
    try:
        async with session.request(method, url, **kwargs) as resp:
            text = await resp.text()
            ok = resp.status == expected_status and (expected_text is None or expected_text in text)
            mark = "✅" if ok else "❌"
            print(f"   {mark} {name}: {resp.status} {text[:80]}")
            return ok
    except aiohttp.ClientError as e:
        print(f"   ❌ {name}: {e}")
        return False


async def run_smoke_test(base_url: str) -> bool:
    """Probar el Event Collector"""
    print("🧪 Iniciando pruebas del Event Collector...")
    results = []

    async with aiohttp.ClientSession() as session:
        print("\n1️⃣ Health")
        results.append(await check(session, "health/ready", "GET", f"{base_url}/health/ready", 200))

        print("\n2️⃣ Evento válido")
        results.append(await check(
            session, "click", "POST", f"{base_url}/v2/event/click", 200, "Ok",
            json={"foo": "bar", "session_id": f"session-{uuid.uuid4()}"},
            headers={"User-Agent": IPHONE_UA},
        ))

        print("\n3️⃣ Tipo desconocido")
        results.append(await check(
            session, "purchase", "POST", f"{base_url}/v2/event/purchase", 400, "Type not found",
            json={"foo": "bar"},
        ))

        print("\n4️⃣ Body inválido")
        results.append(await check(
            session, "view sin body", "POST", f"{base_url}/v2/event/view", 400, "Bad parameters",
            data=b"",
        ))

        print("\n5️⃣ Carga (50 eventos display)")
        start_time = time.time()
        tasks = [
            session.post(f"{base_url}/v2/event/display", json={"slot": f"slot-{i % 5}", "batch": i})
            for i in range(50)
        ]
        responses = await asyncio.gather(*tasks, return_exceptions=True)
        success_count = 0
        for response in responses:
            if not isinstance(response, BaseException):
                if response.status == 200:
                    success_count += 1
                response.close()
        total_time = (time.time() - start_time) * 1000
        print(f"   📊 {success_count}/50 OK en {total_time:.2f}ms ({total_time / 50:.2f}ms por request)")
        results.append(success_count == 50)

    return all(results)


if __name__ == "__main__":
    url = os.environ.get("ATTN_COLLECTOR_URL", "http://localhost:3030")
    print("🚀 attn - Event Collector Smoke Test")
    print("=" * 50)
    ok = asyncio.run(run_smoke_test(url))
    print("\n" + "=" * 50)
    print("✅ Smoke test OK" if ok else "💥 Smoke test con fallos")
    sys.exit(0 if ok else 1)
