import sys
import os
import asyncio
import threading
import streamlit as st

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from core.client import LessonsClient
from core.config import configure_logging, get_settings
from core.errors import CapacityExhausted, CartLocked, NotFound
from core.service import Storefront
from core.transforms import SORT_KEYS


# ============ Инициализация ============
@st.cache_resource
def get_settings_cached():
    settings = get_settings()
    configure_logging(settings.log_level)
    return settings


@st.cache_resource
def get_loop() -> asyncio.AbstractEventLoop:
    """Один цикл на процесс: отложенный сброс после заказа переживает перезапуски скрипта"""
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, daemon=True).start()
    return loop


def run(coro):
    return asyncio.run_coroutine_threadsafe(coro, get_loop()).result()


st.set_page_config(
    page_title="Lessons",
    page_icon="📚",
    layout="wide",
)

settings = get_settings_cached()

if "store" not in st.session_state:
    store = Storefront(LessonsClient(settings), settings)
    run(store.load())
    st.session_state.store = store

store: Storefront = st.session_state.store


def format_price(price) -> str:
    return f"£{price:.2f}"


# ============ HEADER ============
st.title("📚 Lessons")

col_search, col_sort, col_order, col_cart = st.columns([4, 2, 2, 2])
with col_search:
    query = st.text_input("🔍 Поиск по теме или городу", store.state.search_query)
    if query != store.state.search_query:
        store.set_search(query)
with col_sort:
    sort_by = st.selectbox("Сортировка", ("",) + SORT_KEYS, key="sort_by")
with col_order:
    sort_order = st.radio("Порядок", ("asc", "desc"), horizontal=True, key="sort_order")
if (sort_by, sort_order) != (store.state.sort_by, store.state.sort_order):
    store.set_sort(sort_by, sort_order)
with col_cart:
    label = f"🛒 Корзина ({store.cart_count()})"
    if st.button(label, disabled=not store.state.cart and not store.state.show_cart):
        store.toggle_cart()
        st.rerun()

if store.state.alert:
    st.error(store.state.alert)

st.divider()


# ============ PAGE: КАТАЛОГ ============
if not store.state.show_cart:
    lessons = store.lessons_view()
    if not lessons:
        st.warning("Уроки не найдены.")
    for lesson in lessons:
        cols = st.columns([3, 3, 2, 2, 2])
        with cols[0]:
            st.markdown(f"**{lesson.topic}**")
        with cols[1]:
            st.write(f"📍 {lesson.location}")
        with cols[2]:
            st.write(format_price(lesson.price))
        with cols[3]:
            st.write(f"Мест: {lesson.spaces}")
        with cols[4]:
            if st.button(
                "➕ В корзину", key=f"add_{lesson.id}", disabled=lesson.spaces <= 0
            ):
                try:
                    store.add_to_cart(lesson.id)
                except (CapacityExhausted, NotFound, CartLocked) as exc:
                    st.warning(str(exc))
                st.rerun()


# ============ PAGE: КОРЗИНА ============
else:
    st.header("🛒 Ваша корзина")
    locked = store.sequencer.busy

    for item in store.state.cart:
        cols = st.columns([4, 3, 2, 1])
        with cols[0]:
            st.write(f"**{item.topic}**")
        with cols[1]:
            st.write(item.location)
        with cols[2]:
            st.write(format_price(item.price))
        with cols[3]:
            if st.button("🗑️", key=f"remove_{item.entry_id}", disabled=locked):
                store.remove_from_cart(item.entry_id)
                st.rerun()

    st.markdown(f"### Итого: **{format_price(store.cart_total())}**")

    if st.button("Очистить корзину", disabled=locked or not store.state.cart):
        store.clear_cart()
        st.rerun()

    st.divider()
    name = st.text_input("Имя", store.state.name)
    phone = st.text_input("Телефон", store.state.phone)
    store.set_customer(name=name, phone=phone)

    if store.state.order_message:
        st.success(store.state.order_message)

    if st.button("✅ Оформить заказ", type="primary", disabled=locked):
        run(store.checkout())
        st.rerun()
