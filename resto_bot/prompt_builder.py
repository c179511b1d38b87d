"""
Prompt builder for the restaurant assistant.

Builds the message list sent to the model for one chat turn:

    system   persona + rules + directive grammar + MENU + recent orders + CART
    history  trailing window of prior user/assistant messages
    user     the new message

The assistant talks Indonesian and mutates the cart only through
``[[ACTION:...]]`` directives embedded in its reply (see ai_actions.py).
"""

import json
from typing import Any, Dict, List, Sequence

from .currency import format_rupiah


# =============================================================================
# SYSTEM PROMPT TEMPLATE
# =============================================================================
# Placeholders:
#   __MENU__    - JSON list from services.menu.build_menu_snapshot
#   __ORDERS__  - JSON list of the session's most recent orders
#   __CART__    - JSON snapshot of the current cart
# =============================================================================

SYSTEM_PROMPT_TEMPLATE = '''Kamu adalah asisten AI ramah di restoran. Nama kamu adalah "RestoAI".

TUGAS UTAMA:
1. Menyapa tamu dengan hangat
2. Memberikan rekomendasi menu berdasarkan preferensi
3. Menjawab pertanyaan tentang menu (bahan, alergi, porsi)
4. Membantu proses pemesanan via chat dengan mengubah keranjang tamu

MENU TERSEDIA:
__MENU__

PESANAN TERBARU CUSTOMER INI:
__ORDERS__

KERANJANG SAAT INI:
__CART__

MENGUBAH KERANJANG:
Tambahkan perintah berikut di dalam balasanmu. Perintah tidak terlihat oleh tamu.
- Tambah item:        [[ACTION:add_to_cart:<nama menu>:<jumlah>:<catatan>]]
- Ubah catatan item:  [[ACTION:update_notes:<nama menu>::<catatan>]]
- Hapus item:         [[ACTION:remove_from_cart:<nama menu>]]
Aturan perintah:
- <nama menu> harus persis sama dengan nama di MENU TERSEDIA
- <jumlah> angka bulat positif; boleh dikosongkan (dianggap 1)
- <catatan> boleh dikosongkan, misalnya [[ACTION:add_to_cart:Nasi Goreng:2:]]
- Satu perintah untuk setiap item; beberapa perintah boleh dalam satu balasan
- Hanya gunakan perintah kalau tamu jelas ingin memesan atau mengubah pesanan

ATURAN PENTING:
- Jawab dalam Bahasa Indonesia dengan santai tapi sopan
- Jika ditanya rekomendasi, lihat tags dan deskripsi menu
- Untuk diet/alergi, periksa tags (vegetarian, sehat, pedas, dll)
- Sebutkan harga jika relevan
- Respon singkat dan helpful, maksimal 2-3 kalimat
- Jangan pernah buat menu palsu yang tidak ada di daftar
- Jika tidak yakin, jujur saja dan tawarkan untuk panggil waiter

CONTOH RESPON:
User: "Ada yang seger ga?"
AI: "Ada dong! 🍊 Jus Jeruk Segar (Rp25.000) fresh banget, atau Smoothie Berry buat yang suka sehat. Mau coba yang mana?"

User: "Pesan nasi goreng dua ya, yang satu nggak pedas"
AI: "Siap! Dua Nasi Goreng sudah masuk keranjang, catatannya sudah aku tambahkan 😊 [[ACTION:add_to_cart:Nasi Goreng:2:satu tidak pedas]]"'''


def summarize_orders(orders: Sequence[Any]) -> List[Dict[str, Any]]:
    """Compact summary of recent orders for the prompt."""
    summary = []
    for order in orders:
        items = ", ".join(f"{oi.quantity}x {oi.menu_item_name}" for oi in order.items) or "Kosong"
        summary.append({
            "status": order.status,
            "payment_status": order.payment_status,
            "total": format_rupiah(order.total_amount),
            "items": items,
        })
    return summary


def summarize_cart(cart_snapshot: Dict[str, Any]) -> Dict[str, Any]:
    lines = []
    for line in cart_snapshot.get("items", []):
        entry = {"name": line["name"], "quantity": line["quantity"]}
        if line.get("notes"):
            entry["notes"] = line["notes"]
        lines.append(entry)
    return {
        "items": lines,
        "total": format_rupiah(cart_snapshot.get("total_amount", 0)),
    }


def build_system_prompt(
    menu_snapshot: List[Dict[str, Any]],
    recent_orders: Sequence[Any],
    cart_snapshot: Dict[str, Any],
) -> str:
    return (
        SYSTEM_PROMPT_TEMPLATE
        .replace("__MENU__", json.dumps(menu_snapshot, indent=2, ensure_ascii=False))
        .replace("__ORDERS__", json.dumps(summarize_orders(recent_orders), indent=2, ensure_ascii=False))
        .replace("__CART__", json.dumps(summarize_cart(cart_snapshot), indent=2, ensure_ascii=False))
    )


def build_messages(
    system_prompt: str,
    history: Sequence[Any],
    user_message: str,
    window: int = 10,
) -> List[Dict[str, str]]:
    """
    Assemble the chat-completions message list.

    ``history`` holds prior ChatMessage rows (oldest first) and must not
    include the new user message; only the last ``window`` are sent.
    """
    messages = [{"role": "system", "content": system_prompt}]
    recent = list(history)[-window:] if window > 0 else []
    for msg in recent:
        messages.append({"role": msg.role, "content": msg.content})
    messages.append({"role": "user", "content": user_message})
    return messages
