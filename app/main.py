"""
Streamlit Frontend for Smart Split

The screen friends and flatmates use to split bills and settle up.

DESIGN PRINCIPLES:
1. Balances are always recomputed, never typed in
2. A split that does not add up is never saved
3. Clear error messages in simple language
4. Visual feedback for all operations

Sign-in is handled outside this app; the sidebar picks which registered
user you are acting as.
"""

import asyncio
from datetime import datetime, time
from decimal import Decimal

import streamlit as st

from smart_split.audit import create_correlation_id
from smart_split.config import get_settings, validate_all_settings
from smart_split.models import (
    GroupMember,
    GroupRole,
    InvitationStatus,
    NewGroup,
    NewSettlement,
    NewTransaction,
    Participant,
)
from smart_split.orchestrator import AccessDeniedError, AppComponents, create_app_components
from smart_split.services.storage import DuplicateError, NotFoundError, StorageError
from smart_split.validation import (
    LedgerValidationError,
    SplitMismatchError,
    TransactionValidationError,
    TransactionValidator,
)


# Page configuration
st.set_page_config(
    page_title="Smart Split",
    page_icon="💸",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .owed-box {
        padding: 16px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 8px 0;
    }
    .owing-box {
        padding: 16px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 8px 0;
    }
</style>
""", unsafe_allow_html=True)

UNKNOWN_USER = "Unknown user"

# Errors the flows raise for bad input or permissions; shown as-is
USER_FACING_ERRORS = (
    LedgerValidationError,
    AccessDeniedError,
    NotFoundError,
    DuplicateError,
)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_components() -> AppComponents:
    """Get or create application components (cached)."""
    return create_app_components()


def money(amount) -> str:
    return f"{get_settings().app.currency_symbol}{Decimal(amount):,.2f}"


def main():
    """Main application entry point."""
    try:
        app = get_components()
    except StorageError as e:
        st.error(f"Could not open the ledger: {e}")
        st.stop()

    st.sidebar.title("💸 Smart Split")
    st.sidebar.markdown("---")

    users = run_async(app.users.list_users())
    names = {user.id: user.name for user in users}

    actor_id = None
    if users:
        actor_id = st.sidebar.selectbox(
            "Acting as",
            options=[user.id for user in users],
            format_func=lambda uid: names.get(uid, UNKNOWN_USER),
        )
    else:
        st.sidebar.info("No users yet. Register the first one below.")

    render_register_form(app)

    st.sidebar.markdown("---")
    page = st.sidebar.radio(
        "Navigate to:",
        [
            "📊 Balances",
            "➕ Add Expense",
            "🤝 Settle Up",
            "👥 Groups",
            "🏦 Bank Import",
            "🙋 Profile & Contacts",
            "⚙️ Settings",
        ],
        index=0,
    )

    if page == "⚙️ Settings":
        render_settings_page(app)
        return

    if actor_id is None:
        st.info("Register a user in the sidebar to get started.")
        return

    if page == "📊 Balances":
        render_balances_page(app, actor_id, names)
    elif page == "➕ Add Expense":
        render_add_expense_page(app, actor_id, names)
    elif page == "🤝 Settle Up":
        render_settle_page(app, actor_id, names)
    elif page == "👥 Groups":
        render_groups_page(app, actor_id, names)
    elif page == "🏦 Bank Import":
        render_bank_page(app, actor_id, names)
    elif page == "🙋 Profile & Contacts":
        render_profile_page(app, actor_id, names)


def render_register_form(app: AppComponents):
    with st.sidebar.expander("➕ Register user"):
        with st.form("register_user", clear_on_submit=True):
            name = st.text_input("Name")
            email = st.text_input("Email")
            phone = st.text_input("Phone (optional)")
            if st.form_submit_button("Register"):
                if not name or not email:
                    st.error("Name and email are required")
                    return
                try:
                    user = run_async(app.users.register_user(name, email, phone))
                    st.success(f"Registered {user.name}")
                    st.rerun()
                except DuplicateError as e:
                    st.error(str(e))


def render_balances_page(app: AppComponents, actor_id: str, names: dict[str, str]):
    """Who owes me, whom do I owe."""
    st.title("📊 Balances")

    report = run_async(app.settlements.get_balances(actor_id, create_correlation_id()))
    summary = report.summary

    col1, col2, col3 = st.columns(3)
    col1.metric("You are owed", money(summary.total_owed))
    col2.metric("You owe", money(summary.total_owing))
    col3.metric("Net", money(summary.net_balance))

    st.markdown("---")

    if not report.balances:
        st.success("✅ You are all settled up.")
    for balance in report.balances:
        other = names.get(balance.counterparty_id, UNKNOWN_USER)
        if balance.subject_owes:
            st.markdown(f"""
            <div class="owing-box">You owe <strong>{other}</strong> {money(balance.amount)}</div>
            """, unsafe_allow_html=True)
        else:
            st.markdown(f"""
            <div class="owed-box"><strong>{other}</strong> owes you {money(balance.amount)}</div>
            """, unsafe_allow_html=True)

    st.markdown("### Recent expenses")
    transactions = run_async(app.transactions.list_for_user(actor_id))
    if not transactions:
        st.info("No expenses yet. Add one from the 'Add Expense' page.")
    for transaction in transactions[:20]:
        payer = names.get(transaction.paid_by, UNKNOWN_USER)
        with st.expander(
            f"{transaction.date:%d %b %Y} · {transaction.description} · {money(transaction.amount)}"
        ):
            st.markdown(f"**Paid by:** {payer}")
            for participant in transaction.participants:
                st.markdown(
                    f"- {names.get(participant.user_id, UNKNOWN_USER)}: {money(participant.share)}"
                )
            if transaction.created_by == actor_id:
                if st.button("🗑️ Delete", key=f"delete_{transaction.id}"):
                    try:
                        run_async(app.transactions.delete_transaction(actor_id, transaction.id))
                        st.rerun()
                    except USER_FACING_ERRORS as e:
                        st.error(str(e))

    st.markdown("### Settlements")
    for settlement in run_async(app.settlements.list_for_user(actor_id))[:20]:
        payer = names.get(settlement.paid_by, UNKNOWN_USER)
        payee = names.get(settlement.paid_to, UNKNOWN_USER)
        st.markdown(
            f"- {settlement.date:%d %b %Y}: {payer} paid {payee} {money(settlement.amount)}"
            + (f" ({settlement.note})" if settlement.note else "")
        )


def render_add_expense_page(app: AppComponents, actor_id: str, names: dict[str, str]):
    """Record a shared expense with an equal or custom split."""
    st.title("➕ Add Expense")

    groups = run_async(app.groups.list_for_user(actor_id))
    group_names = {group.id: group.name for group in groups}

    description = st.text_input("Description *", placeholder="e.g., Dinner at Toit")
    amount = st.number_input("Amount *", min_value=0.0, step=0.01, format="%.2f")

    col1, col2 = st.columns(2)
    with col1:
        paid_by = st.selectbox(
            "Paid by",
            options=list(names),
            index=list(names).index(actor_id),
            format_func=lambda uid: names.get(uid, UNKNOWN_USER),
        )
        group_id = st.selectbox(
            "Group (optional)",
            options=[None] + list(group_names),
            format_func=lambda gid: "No group" if gid is None else group_names[gid],
        )
    with col2:
        expense_date = st.date_input("Date", value=datetime.now().date())
        category = st.text_input("Category", value=get_settings().app.default_category)

    participant_ids = st.multiselect(
        "Split between *",
        options=list(names),
        default=[actor_id],
        format_func=lambda uid: names.get(uid, UNKNOWN_USER),
    )

    split_mode = st.radio("Split", ["Equally", "Custom amounts"], horizontal=True)

    total = Decimal(str(amount)).quantize(Decimal("0.01"))
    participants: list[Participant] = []
    if participant_ids and split_mode == "Equally":
        each = (total / len(participant_ids)).quantize(Decimal("0.01"))
        shares = [each] * len(participant_ids)
        # The last person absorbs the rounding remainder
        shares[-1] = total - each * (len(participant_ids) - 1)
        participants = [
            Participant(user_id=uid, share=share) for uid, share in zip(participant_ids, shares)
        ]
        st.caption(f"{money(each)} each")
    elif participant_ids:
        for uid in participant_ids:
            share = st.number_input(
                f"Share for {names.get(uid, UNKNOWN_USER)}",
                min_value=0.0,
                step=0.01,
                format="%.2f",
                key=f"share_{uid}",
            )
            participants.append(Participant(user_id=uid, share=Decimal(str(share))))

    if st.button("✅ Save Expense", type="primary"):
        new_transaction = NewTransaction(
            description=description,
            amount=total,
            category=category or None,
            paid_by=paid_by,
            participants=participants,
            group_id=group_id,
            date=datetime.combine(expense_date, time()),
        )
        try:
            transaction = run_async(
                app.transactions.create_transaction(
                    actor_id, new_transaction, create_correlation_id()
                )
            )
            st.success(f"✅ Saved: {transaction.description} ({money(transaction.amount)})")
        except TransactionValidationError as e:
            st.error(TransactionValidator().get_user_friendly_summary(e.result))
        except USER_FACING_ERRORS as e:
            st.error(str(e))


def render_settle_page(app: AppComponents, actor_id: str, names: dict[str, str]):
    """Record a direct payment to someone."""
    st.title("🤝 Settle Up")

    report = run_async(app.settlements.get_balances(actor_id))
    others = [uid for uid in names if uid != actor_id]
    if not others:
        st.info("There is nobody else to settle up with yet.")
        return

    paid_to = st.selectbox(
        "You paid",
        options=others,
        format_func=lambda uid: names.get(uid, UNKNOWN_USER),
    )

    open_balance = report.balance_with(paid_to)
    suggested = 0.0
    if open_balance and open_balance.subject_owes:
        suggested = float(open_balance.amount)
        st.caption(f"You currently owe {money(open_balance.amount)}")
    elif open_balance:
        st.caption(f"They currently owe you {money(open_balance.amount)}")

    amount = st.number_input("Amount *", min_value=0.0, value=suggested, step=0.01, format="%.2f")
    note = st.text_input("Note (optional)")

    if st.button("✅ Record Payment", type="primary"):
        if amount <= 0:
            st.error("Please enter an amount greater than zero")
            return
        try:
            settlement = run_async(app.settlements.record_settlement(
                actor_id,
                NewSettlement(
                    paid_to=paid_to,
                    amount=Decimal(str(amount)).quantize(Decimal("0.01")),
                    note=note,
                ),
                create_correlation_id(),
            ))
            st.success(f"✅ Recorded {money(settlement.amount)} to {names.get(paid_to, UNKNOWN_USER)}")
        except USER_FACING_ERRORS as e:
            st.error(str(e))


def render_groups_page(app: AppComponents, actor_id: str, names: dict[str, str]):
    """Create groups and view per-member group balances."""
    st.title("👥 Groups")

    with st.expander("➕ New group"):
        with st.form("new_group", clear_on_submit=True):
            name = st.text_input("Group name *")
            description = st.text_input("Description")
            member_ids = st.multiselect(
                "Members",
                options=[uid for uid in names if uid != actor_id],
                format_func=lambda uid: names.get(uid, UNKNOWN_USER),
            )
            if st.form_submit_button("Create group"):
                if not name:
                    st.error("Please enter a group name")
                else:
                    members = [GroupMember(user_id=actor_id, role=GroupRole.ADMIN)]
                    members += [GroupMember(user_id=uid) for uid in member_ids]
                    group = run_async(app.groups.create_group(
                        actor_id,
                        NewGroup(name=name, description=description, members=members),
                    ))
                    st.success(f"Created {group.name}")

    groups = run_async(app.groups.list_for_user(actor_id))
    if not groups:
        st.info("You are not in any group yet.")
        return

    group_id = st.selectbox(
        "Group",
        options=[group.id for group in groups],
        format_func=lambda gid: next(g.name for g in groups if g.id == gid),
    )

    try:
        detail = run_async(app.groups.get_group_detail(actor_id, group_id))
    except USER_FACING_ERRORS as e:
        st.error(str(e))
        return

    if detail.description:
        st.markdown(f"*{detail.description}*")

    st.markdown("### Balances")
    for member_id, balance in detail.balances.items():
        who = names.get(member_id, UNKNOWN_USER)
        if balance > 0:
            st.markdown(f"- **{who}** gets back {money(balance)}")
        elif balance < 0:
            st.markdown(f"- **{who}** owes {money(-balance)}")
        else:
            st.markdown(f"- **{who}** is settled")

    st.markdown("### Expenses")
    for transaction in detail.transactions:
        st.markdown(
            f"- {transaction.date:%d %b %Y}: {transaction.description}, "
            f"{money(transaction.amount)} paid by {names.get(transaction.paid_by, UNKNOWN_USER)}"
        )

    if detail.is_admin(actor_id):
        st.markdown("### Manage")
        candidates = [uid for uid in names if not detail.is_member(uid)]
        if candidates:
            new_member = st.selectbox(
                "Add member",
                options=candidates,
                format_func=lambda uid: names.get(uid, UNKNOWN_USER),
            )
            if st.button("Add to group"):
                try:
                    run_async(app.groups.add_member(actor_id, group_id, new_member))
                    st.rerun()
                except USER_FACING_ERRORS as e:
                    st.error(str(e))

        new_name = st.text_input("Rename group", value=detail.name)
        if st.button("Save name") and new_name != detail.name:
            try:
                run_async(app.groups.update_group(actor_id, group_id, name=new_name))
                st.rerun()
            except USER_FACING_ERRORS as e:
                st.error(str(e))


def render_bank_page(app: AppComponents, actor_id: str, names: dict[str, str]):
    """Connected accounts and importing bank rows as expenses."""
    st.title("🏦 Bank Import")

    with st.expander("🔗 Connect account"):
        with st.form("connect_account", clear_on_submit=True):
            bank_name = st.text_input("Bank name *")
            account_number = st.text_input("Account number *", help="Only the last 4 digits are kept")
            account_type = st.selectbox("Account type", ["savings", "current"])
            ifsc = st.text_input("IFSC")
            if st.form_submit_button("Connect"):
                try:
                    run_async(app.bank.connect_account(
                        actor_id, bank_name, account_number, account_type, ifsc
                    ))
                    st.rerun()
                except USER_FACING_ERRORS as e:
                    st.error(str(e))

    accounts = run_async(app.bank.list_accounts(actor_id))
    if not accounts:
        st.info("No bank accounts connected.")
        return

    account_id = st.selectbox(
        "Account",
        options=[account.id for account in accounts],
        format_func=lambda aid: next(
            f"{a.bank_name} ••{a.account_number}" for a in accounts if a.id == aid
        ),
    )

    if st.button("Disconnect account"):
        run_async(app.bank.disconnect_account(actor_id, account_id))
        st.rerun()

    rows = run_async(app.bank.list_bank_transactions(actor_id, account_id))
    if not rows:
        st.info("No bank transactions recorded for this account yet.")

    others = [uid for uid in names if uid != actor_id]
    for row in rows:
        label = f"{row.date:%d %b %Y} · {row.description} · {money(row.amount)} ({row.type.value})"
        with st.expander(("✅ " if row.is_imported else "") + label):
            if row.is_imported:
                st.caption(f"Imported as expense {row.expense_id}")
                continue

            split_with = st.multiselect(
                "Split with (leave empty to keep it as your own expense)",
                options=others,
                format_func=lambda uid: names.get(uid, UNKNOWN_USER),
                key=f"split_{row.id}",
            )
            participants = None
            if split_with:
                people = [actor_id] + split_with
                each = (row.amount / len(people)).quantize(Decimal("0.01"))
                shares = [each] * len(people)
                shares[-1] = row.amount - each * (len(people) - 1)
                participants = [
                    Participant(user_id=uid, share=share) for uid, share in zip(people, shares)
                ]

            if st.button("Import as expense", key=f"import_{row.id}"):
                try:
                    expense, _ = run_async(app.bank.import_bank_transaction(
                        actor_id, row.id, participants, create_correlation_id()
                    ))
                    st.success(f"✅ Imported as {expense.description}")
                    st.rerun()
                except SplitMismatchError as e:
                    st.error(str(e))
                except USER_FACING_ERRORS as e:
                    st.error(str(e))


def render_profile_page(app: AppComponents, actor_id: str, names: dict[str, str]):
    """Profile edits, invitations and contacts."""
    st.title("🙋 Profile & Contacts")

    user = run_async(app.users.get_user(actor_id))
    with st.form("profile"):
        name = st.text_input("Name", value=user.name)
        phone = st.text_input("Phone", value=user.phone or "")
        st.text_input("Email", value=user.email, disabled=True)
        if st.form_submit_button("Save profile"):
            run_async(app.users.update_profile(actor_id, name=name, phone=phone))
            st.success("Profile saved")

    st.markdown("### Find people")
    query = st.text_input("Search by name, email or phone")
    if query:
        for match in run_async(app.users.search_users(query)):
            st.markdown(f"- {match.name} ({match.email})")

    st.markdown("### Invite someone")
    with st.form("invite", clear_on_submit=True):
        invite_name = st.text_input("Name")
        invite_email = st.text_input("Email")
        invite_phone = st.text_input("Phone")
        message = st.text_area("Message")
        if st.form_submit_button("Send invitation"):
            try:
                invitation = run_async(app.invitations.invite(
                    actor_id, invite_email, invite_phone, invite_name, message
                ))
                st.success(f"Invitation {invitation.status.value}")
            except USER_FACING_ERRORS as e:
                st.error(str(e))

    st.markdown("### Invitations for you")
    received = run_async(app.invitations.list_received(actor_id))
    if not received:
        st.caption("Nothing waiting.")
    for invitation in received:
        st.markdown(f"- From {names.get(invitation.invited_by, UNKNOWN_USER)}: {invitation.message or 'no message'} ({invitation.status.value})")
        if invitation.status != InvitationStatus.ACCEPTED:
            if st.button("Accept", key=f"accept_{invitation.id}"):
                run_async(app.invitations.accept(actor_id, invitation.id))
                st.rerun()

    st.markdown("### Contacts")
    contacts = run_async(app.invitations.list_contacts(actor_id))
    if not contacts:
        st.caption("No contacts yet.")
    for contact in contacts:
        st.markdown(f"- {contact.name} ({contact.email})")


def render_settings_page(app: AppComponents):
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Configuration Status")

    status = validate_all_settings()
    for name, key in [("Storage", "storage"), ("Application", "app")]:
        if status.get(key, False):
            st.success(f"✅ {name} - OK")
        else:
            st.error(f"❌ {name} - {status.get(f'{key}_error', 'Not configured')}")

    settings = get_settings()
    st.markdown(f"**Ledger file:** `{settings.storage.data_path}`")
    st.markdown(f"**Environment:** {settings.app.app_environment}")

    st.markdown("### Recent activity")
    events = run_async(app.audit_storage.get_recent_events(limit=15))
    for event in events:
        st.markdown(f"- {event.timestamp:%d %b %H:%M} · {event.description}")

    st.markdown("---")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the available variables."
    )


if __name__ == "__main__":
    main()
