#!/usr/bin/env python3
"""
Table kiosk client.

A terminal front end for a table device. The device keeps one anonymous
session per profile (see ``SessionIdentity``) and sends it as
``X-Session-ID`` on every call.

Usage:
    # Chat with the assistant at table 7
    python -m resto_bot.kiosk --table 7 chat

    # Show the menu, cart or orders
    python -m resto_bot.kiosk --table 7 menu
    python -m resto_bot.kiosk --table 7 cart
    python -m resto_bot.kiosk --table 7 orders

    # Checkout the cart and pay cash
    python -m resto_bot.kiosk --table 7 checkout --pay cash

    # Cancel an order, or follow order status and kitchen cancellations
    python -m resto_bot.kiosk --table 7 cancel 12
    python -m resto_bot.kiosk --table 7 watch --interval 5

    # Forget this device's session
    python -m resto_bot.kiosk --profile tab2 reset
"""

import argparse
import sys
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests

from .currency import format_rupiah
from .services.order_events import OrderStatusWatcher
from .session_identity import SessionIdentity, get_session_identity

DEFAULT_BASE_URL = "http://localhost:8000"


class KioskError(Exception):
    """The API answered with an error body."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"{status_code}: {message}")


class KioskClient:
    """Thin wrapper over the customer API for one table session."""

    def __init__(
        self,
        identity: SessionIdentity,
        table_number: int,
        base_url: str = DEFAULT_BASE_URL,
        http: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.identity = identity
        self.table_number = table_number
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self.watcher = OrderStatusWatcher()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        headers["X-Session-ID"] = self.identity.get()
        r = self.http.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )
        if r.status_code >= 400:
            try:
                body = r.json()
                message = body.get("message") or body.get("detail") or r.text
            except ValueError:
                message = r.text
            raise KioskError(r.status_code, str(message))
        return r.json()

    def menu(self) -> Dict[str, Any]:
        return self._request("GET", "/menu")

    def cart(self) -> Dict[str, Any]:
        return self._request("GET", "/cart")

    def chat(self, message: str) -> Dict[str, Any]:
        return self._request(
            "POST", "/chat/message",
            json={"message": message, "table_number": self.table_number},
        )

    def checkout(self, notes: Optional[str] = None) -> Dict[str, Any]:
        return self._request("POST", "/orders", json={"table_number": self.table_number, "notes": notes})

    def orders(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/orders")["orders"]

    def select_payment(self, order_id: int, method: str) -> Dict[str, Any]:
        return self._request("POST", f"/orders/{order_id}/payment", json={"method": method})

    def cancel_order(self, order_id: int) -> Dict[str, Any]:
        order = self._request("POST", f"/orders/{order_id}/cancel")
        self.watcher.expect_cancel(order_id)
        return order

    def poll_orders(self) -> List[Tuple[Dict[str, Any], Optional[str]]]:
        """
        Fetch the session's orders and feed them to the status watcher.

        Returns (order, kitchen_reason) pairs; the reason is set only for
        orders the kitchen cancelled since the previous poll.
        """
        results = []
        for order in self.orders():
            reason = self.watcher.observe(order["id"], order["status"], order.get("notes"))
            results.append((order, reason))
        return results


def print_cart(cart: Dict[str, Any]) -> None:
    if not cart["items"]:
        print("Keranjang kosong.")
        return
    for line in cart["items"]:
        notes = f" ({line['notes']})" if line.get("notes") else ""
        print(f"  {line['quantity']}x {line['name']}{notes}  {format_rupiah(line['subtotal'])}")
    print(f"  Total: {format_rupiah(cart['total_amount'])}")


def print_order(order: Dict[str, Any]) -> None:
    line = (
        f"  #{order['id']} {order['status']:<10} {order['payment_status']:<8}"
        f" {format_rupiah(order['total_amount'])}"
    )
    if order.get("kitchen_cancel_reason"):
        line += f"  ({order['kitchen_cancel_reason']})"
    print(line)


def announce_kitchen_cancels(polled: List[Tuple[Dict[str, Any], Optional[str]]]) -> int:
    count = 0
    for order, reason in polled:
        if reason:
            print(f"! Pesanan #{order['id']} dibatalkan oleh dapur: {reason}")
            count += 1
    return count


def watch_orders(
    client: KioskClient,
    interval: float = 5.0,
    rounds: Optional[int] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll the session's orders, printing status changes and kitchen cancellations."""
    seen: Dict[int, str] = {}
    done = 0
    while rounds is None or done < rounds:
        polled = client.poll_orders()
        for order, _ in polled:
            if seen.get(order["id"]) != order["status"]:
                seen[order["id"]] = order["status"]
                print_order(order)
        announce_kitchen_cancels(polled)
        done += 1
        if rounds is None or done < rounds:
            sleep(interval)


def chat_loop(client: KioskClient) -> None:
    print("Ketik pesan untuk RestoAI (kosong untuk keluar).")
    client.poll_orders()
    while True:
        try:
            message = input("> ").strip()
        except EOFError:
            break
        if not message:
            break
        try:
            resp = client.chat(message)
        except KioskError as e:
            print(f"! {e.message}")
            continue
        print(f"RestoAI: {resp['reply']}")
        if resp.get("actions") and resp.get("cart"):
            print_cart(resp["cart"])
        announce_kitchen_cancels(client.poll_orders())


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Resto Bot table kiosk")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument("--table", type=int, default=1, help="Table number")
    parser.add_argument("--profile", default="default", help="Device profile (one session each)")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("chat")
    sub.add_parser("menu")
    sub.add_parser("cart")
    sub.add_parser("orders")
    checkout = sub.add_parser("checkout")
    checkout.add_argument("--notes")
    checkout.add_argument("--pay", choices=["cash", "qris"])
    cancel = sub.add_parser("cancel")
    cancel.add_argument("order_id", type=int)
    watch = sub.add_parser("watch")
    watch.add_argument("--interval", type=float, default=5.0)
    sub.add_parser("reset")
    args = parser.parse_args(argv)

    identity = get_session_identity(profile=args.profile)
    if args.command == "reset":
        identity.clear()
        print(f"Session for profile '{args.profile}' cleared.")
        return 0

    client = KioskClient(identity, args.table, base_url=args.base_url)
    try:
        if args.command == "chat":
            chat_loop(client)
        elif args.command == "menu":
            for item in client.menu()["items"]:
                print(f"  {item['name']:<24} {format_rupiah(item['price'])}")
        elif args.command == "cart":
            print_cart(client.cart())
        elif args.command == "orders":
            for order in client.orders():
                print_order(order)
        elif args.command == "checkout":
            order = client.checkout(args.notes)
            print(f"Pesanan #{order['id']} dibuat, total {format_rupiah(order['total_amount'])}.")
            if args.pay:
                view = client.select_payment(order["id"], args.pay)
                print(f"Pembayaran: {view['state']}")
        elif args.command == "cancel":
            order = client.cancel_order(args.order_id)
            print(f"Pesanan #{order['id']} dibatalkan.")
        elif args.command == "watch":
            watch_orders(client, interval=args.interval)
    except KeyboardInterrupt:
        return 0
    except KioskError as e:
        print(f"Error: {e.message}")
        return 1
    except requests.RequestException as e:
        print(f"Error: cannot reach {args.base_url}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
