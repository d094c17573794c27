from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional

from PySide6.QtCore import Qt
from PySide6.QtWidgets import (
    QApplication,
    QDialog,
    QDialogButtonBox,
    QFormLayout,
    QHBoxLayout,
    QLabel,
    QLineEdit,
    QListWidget,
    QListWidgetItem,
    QMainWindow,
    QMessageBox,
    QPushButton,
    QSpinBox,
    QStackedWidget,
    QTabWidget,
    QVBoxLayout,
    QWidget,
)

from ..persistence import API_URL, ShiftApiError, run_with_client
from ..timegrid import DEFAULT_END_HOUR, DEFAULT_START_HOUR
from .day_view import DaySchedulePage

logger = logging.getLogger(__name__)

ACCENT_COLOR = "#f5b942"
SUCCESS_COLOR = "#66d9a6"
INFO_COLOR = "#a8aec6"
ERROR_COLOR = "#ff7a7a"

THEME_STYLESHEET = """
QWidget {
    background-color: #090a0e;
    color: #f5f6fa;
    font-family: 'Segoe UI', sans-serif;
    font-size: 14px;
}

QGroupBox, QDialog, QMenu, QToolTip {
    background-color: #111217;
    border: 1px solid #1c1d23;
    border-radius: 12px;
}

QGroupBox {
    margin-top: 20px;
    padding: 14px;
}

QGroupBox::title {
    color: #f9d24a;
    font-weight: 600;
    subcontrol-origin: margin;
    subcontrol-position: top left;
    margin-left: 14px;
    padding: 2px 10px;
}

QPushButton {
    background-color: #f5b942;
    color: #0b0b0f;
    border-radius: 10px;
    padding: 8px 18px;
    font-weight: 600;
    border: none;
}

QPushButton:hover {
    background-color: #ffd36a;
}

QPushButton:disabled {
    background-color: #262730;
    color: #7d7f8f;
}

QLineEdit,
QComboBox,
QSpinBox,
QDoubleSpinBox,
QDateEdit,
QPlainTextEdit {
    background-color: #15161c;
    border: 1px solid #25262d;
    border-radius: 10px;
    padding: 6px 10px;
    selection-background-color: #f5b942;
    selection-color: #0b0b0f;
}

QLineEdit:focus,
QComboBox:focus,
QSpinBox:focus,
QDoubleSpinBox:focus,
QDateEdit:focus,
QPlainTextEdit:focus {
    border: 1px solid #f5b942;
}

QListWidget {
    background-color: #14151c;
    border: 1px solid #1c1d23;
    border-radius: 12px;
}

QListWidget::item {
    padding: 6px 10px;
}

QListWidget::item:selected {
    background-color: #f5b942;
    color: #0b0b0f;
}

QScrollArea {
    border: none;
}
"""


class LoginDialog(QDialog):
    """Sign in, or create an account when the server has none yet."""

    def __init__(self, api_url: str) -> None:
        super().__init__()
        self.api_url = api_url
        self.session: Optional[Dict[str, Any]] = None
        self.setWindowTitle("Shiftboard - Sign in")
        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        heading = QLabel(f"<h2 style='color:{ACCENT_COLOR};'>Sign in to Shiftboard</h2>")
        subheading = QLabel(f"Server: {self.api_url}")
        subheading.setStyleSheet("color:#c9cede;")

        self.tabs = QTabWidget()
        login_page = QWidget()
        login_form = QFormLayout(login_page)
        self.username_input = QLineEdit()
        self.username_input.setPlaceholderText("Username or email")
        self.password_input = QLineEdit()
        self.password_input.setPlaceholderText("Password")
        self.password_input.setEchoMode(QLineEdit.Password)
        login_form.addRow("Username", self.username_input)
        login_form.addRow("Password", self.password_input)
        self.tabs.addTab(login_page, "Sign in")

        register_page = QWidget()
        register_form = QFormLayout(register_page)
        self.reg_username_input = QLineEdit()
        self.reg_email_input = QLineEdit()
        self.reg_name_input = QLineEdit()
        self.reg_password_input = QLineEdit()
        self.reg_password_input.setEchoMode(QLineEdit.Password)
        self.reg_confirm_input = QLineEdit()
        self.reg_confirm_input.setEchoMode(QLineEdit.Password)
        register_form.addRow("Username", self.reg_username_input)
        register_form.addRow("Email", self.reg_email_input)
        register_form.addRow("Full name", self.reg_name_input)
        register_form.addRow("Password", self.reg_password_input)
        register_form.addRow("Confirm", self.reg_confirm_input)
        self.tabs.addTab(register_page, "Create account")

        self.error_label = QLabel()
        self.error_label.setStyleSheet(f"color:{ERROR_COLOR};")
        self.error_label.setWordWrap(True)
        self.error_label.setVisible(False)

        button_box = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        button_box.accepted.connect(self.submit)
        button_box.rejected.connect(self.reject)

        layout.addWidget(heading)
        layout.addWidget(subheading)
        layout.addSpacing(10)
        layout.addWidget(self.tabs)
        layout.addWidget(self.error_label)
        layout.addWidget(button_box)

    def _set_error(self, message: str = "") -> None:
        self.error_label.setText(message)
        self.error_label.setVisible(bool(message.strip()))

    def submit(self) -> None:
        if self.tabs.currentIndex() == 0:
            self.attempt_login()
        else:
            self.attempt_register()

    def attempt_login(self) -> None:
        username = self.username_input.text().strip()
        password = self.password_input.text()
        if not username or not password:
            self._set_error("Enter your username and password.")
            return
        try:
            session = run_with_client(lambda client: client.login(username, password), base_url=self.api_url)
        except ShiftApiError as exc:
            self.password_input.clear()
            self._set_error(exc.detail if exc.status_code != 401 else "Invalid username or password.")
            return
        self.password_input.clear()
        self._set_error("")
        self.session = session
        self.accept()

    def attempt_register(self) -> None:
        password = self.reg_password_input.text()
        if password != self.reg_confirm_input.text():
            self._set_error("Passwords do not match.")
            return
        username = self.reg_username_input.text().strip()
        email = self.reg_email_input.text().strip()
        full_name = self.reg_name_input.text().strip()
        try:
            session = run_with_client(
                lambda client: client.register(username, email, password, full_name),
                base_url=self.api_url,
            )
        except ShiftApiError as exc:
            self._set_error(exc.detail)
            return
        self.reg_password_input.clear()
        self.reg_confirm_input.clear()
        self.session = session
        self.accept()


class CompanyDialog(QDialog):
    def __init__(self, parent=None) -> None:
        super().__init__(parent)
        self.setWindowTitle("New company")
        layout = QVBoxLayout(self)
        form = QFormLayout()
        self.name_input = QLineEdit()
        self.address_input = QLineEdit()
        self.start_hour_spin = QSpinBox()
        self.start_hour_spin.setRange(0, 46)
        self.start_hour_spin.setValue(DEFAULT_START_HOUR)
        self.end_hour_spin = QSpinBox()
        self.end_hour_spin.setRange(1, 47)
        self.end_hour_spin.setValue(DEFAULT_END_HOUR)
        form.addRow("Name", self.name_input)
        form.addRow("Address", self.address_input)
        form.addRow("Opens (hour)", self.start_hour_spin)
        form.addRow("Closes (hour, up to 47)", self.end_hour_spin)
        layout.addLayout(form)
        self.error_label = QLabel()
        self.error_label.setStyleSheet(f"color:{ERROR_COLOR};")
        layout.addWidget(self.error_label)
        button_box = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        button_box.accepted.connect(self._accept)
        button_box.rejected.connect(self.reject)
        layout.addWidget(button_box)

    def _accept(self) -> None:
        if not self.name_input.text().strip():
            self.error_label.setText("Company name is required.")
            return
        if self.start_hour_spin.value() >= self.end_hour_spin.value():
            self.error_label.setText("Closing hour must be after opening hour.")
            return
        self.accept()

    def values(self) -> Dict[str, Any]:
        return {
            "name": self.name_input.text().strip(),
            "address": self.address_input.text().strip(),
            "startHour": self.start_hour_spin.value(),
            "endHour": self.end_hour_spin.value(),
        }


class ChangePasswordDialog(QDialog):
    def __init__(self, api_url: str, token: str, username: str, parent=None) -> None:
        super().__init__(parent)
        self.api_url = api_url
        self.token = token
        self.username = username
        self.new_token: Optional[str] = None
        self.setWindowTitle("Change password")
        self._build_ui()

    def _build_ui(self) -> None:
        layout = QVBoxLayout(self)
        heading = QLabel(
            f"<b>Update password for <span style='color:{ACCENT_COLOR};'>{self.username}</span></b>"
        )
        heading.setWordWrap(True)
        layout.addWidget(heading)

        form = QFormLayout()
        self.current_input = QLineEdit()
        self.current_input.setEchoMode(QLineEdit.Password)
        self.current_input.setPlaceholderText("Current password")
        form.addRow("Current password", self.current_input)
        self.new_input = QLineEdit()
        self.new_input.setEchoMode(QLineEdit.Password)
        self.new_input.setPlaceholderText("New password")
        form.addRow("New password", self.new_input)
        self.confirm_input = QLineEdit()
        self.confirm_input.setEchoMode(QLineEdit.Password)
        self.confirm_input.setPlaceholderText("Confirm new password")
        form.addRow("Confirm password", self.confirm_input)

        self.feedback_label = QLabel()
        self.feedback_label.setStyleSheet(f"color:{ERROR_COLOR};")
        self.feedback_label.setWordWrap(True)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self.attempt_change)
        buttons.rejected.connect(self.reject)

        layout.addLayout(form)
        layout.addWidget(self.feedback_label)
        layout.addWidget(buttons)
        self.current_input.setFocus()

    def attempt_change(self) -> None:
        current_password = self.current_input.text()
        new_password = self.new_input.text()
        if new_password != self.confirm_input.text():
            self.feedback_label.setText("New passwords do not match.")
            self.new_input.clear()
            self.confirm_input.clear()
            return
        try:
            session = run_with_client(
                lambda client: client.change_password(current_password, new_password),
                base_url=self.api_url,
                token=self.token,
            )
        except ShiftApiError as exc:
            if exc.status_code == 403:
                self.feedback_label.setText("Current password is incorrect.")
                self.current_input.clear()
            else:
                self.feedback_label.setText(exc.detail)
                self.new_input.clear()
                self.confirm_input.clear()
            return
        self.new_token = session["token"]
        self.current_input.clear()
        self.new_input.clear()
        self.confirm_input.clear()
        self.accept()


class MainWindow(QMainWindow):
    def __init__(self, session: Dict[str, Any], api_url: str) -> None:
        super().__init__()
        self.user = session["user"]
        self.token = session["token"]
        self.api_url = api_url
        self.signed_out = False
        self.companies: List[Dict[str, Any]] = []
        self.day_page: Optional[DaySchedulePage] = None
        self.setWindowTitle("Shiftboard")
        self.setMinimumSize(1100, 720)
        self._resize_to_screen()
        self._build_ui()
        self.load_companies()

    def _resize_to_screen(self) -> None:
        screen = QApplication.primaryScreen()
        if screen is None:
            self.resize(1280, 840)
            return
        available = screen.availableGeometry()
        width = max(int(available.width() * 0.85), self.minimumWidth())
        height = max(int(available.height() * 0.85), self.minimumHeight())
        self.resize(width, height)
        center = available.center()
        self.move(center.x() - width // 2, center.y() - height // 2)

    def _build_ui(self) -> None:
        self.stack = QStackedWidget()
        self.setCentralWidget(self.stack)

        home = QWidget()
        layout = QVBoxLayout(home)
        layout.setAlignment(Qt.AlignTop)
        display_name = self.user.get("fullName") or self.user["username"]
        header_row = QHBoxLayout()
        header_titles = QVBoxLayout()
        header_titles.setSpacing(2)
        header_titles.addWidget(QLabel(f"<h1 style='color:{ACCENT_COLOR};'>Welcome, {display_name}!</h1>"))
        role_label = QLabel(f"Current role: <b>{self.user['role']}</b>")
        role_label.setStyleSheet("color:#c9cede;")
        header_titles.addWidget(role_label)
        header_row.addLayout(header_titles)
        header_row.addStretch()
        password_button = QPushButton("Change password")
        password_button.clicked.connect(self.change_password)
        header_row.addWidget(password_button)
        logout_button = QPushButton("Sign out")
        logout_button.clicked.connect(self.handle_logout)
        header_row.addWidget(logout_button)
        layout.addLayout(header_row)
        layout.addSpacing(12)

        layout.addWidget(QLabel("Companies"))
        self.company_list = QListWidget()
        self.company_list.itemDoubleClicked.connect(self._open_selected_company)
        layout.addWidget(self.company_list, 1)

        actions = QHBoxLayout()
        open_button = QPushButton("Open schedule")
        open_button.clicked.connect(self._open_selected_company)
        new_button = QPushButton("New company")
        new_button.clicked.connect(self.create_company)
        actions.addWidget(open_button)
        actions.addWidget(new_button)
        actions.addStretch()
        layout.addLayout(actions)

        self.feedback_label = QLabel()
        self.feedback_label.setWordWrap(True)
        layout.addWidget(self.feedback_label)
        self.stack.addWidget(home)

    def _call(self, operation) -> Any:
        try:
            return run_with_client(operation, base_url=self.api_url, token=self.token)
        except ShiftApiError as exc:
            self.feedback_label.setText(f"<span style='color:{ERROR_COLOR};'>{exc.detail}</span>")
            return None

    def load_companies(self) -> None:
        companies = self._call(lambda client: client.list_companies())
        if companies is None:
            return
        self.companies = companies
        self.company_list.clear()
        for company in companies:
            role = company.get("companyRole") or ("admin" if self.user.get("role") == "admin" else "")
            hours = f"{company['startHour']:02d}:00 - {company['endHour']:02d}:00"
            item = QListWidgetItem(f"{company['name']}    {hours}    {role}")
            item.setData(Qt.UserRole, company["id"])
            self.company_list.addItem(item)
        if not companies:
            self.feedback_label.setText(
                f"<span style='color:{INFO_COLOR};'>No companies yet. Create one to start scheduling.</span>"
            )

    def create_company(self) -> None:
        dialog = CompanyDialog(self)
        if dialog.exec() != QDialog.Accepted:
            return
        values = dialog.values()

        if self._call(lambda client: client.create_company(values)) is not None:
            self.load_companies()

    def _open_selected_company(self, *_args) -> None:
        item = self.company_list.currentItem()
        if item is None:
            self.feedback_label.setText(f"<span style='color:{ERROR_COLOR};'>Select a company first.</span>")
            return
        company_id = item.data(Qt.UserRole)
        company = next((entry for entry in self.companies if entry["id"] == company_id), None)
        if company is None:
            return
        self.open_company(company)

    def open_company(self, company: Dict[str, Any]) -> None:
        if self.day_page is not None:
            self.stack.removeWidget(self.day_page)
            self.day_page.deleteLater()
        self.day_page = DaySchedulePage(
            company,
            self.user,
            token=self.token,
            api_url=self.api_url,
            on_back=self.show_companies,
        )
        self.stack.addWidget(self.day_page)
        self.stack.setCurrentWidget(self.day_page)
        self.setWindowTitle(f"Shiftboard - {company['name']}")

    def show_companies(self) -> None:
        self.stack.setCurrentIndex(0)
        self.setWindowTitle("Shiftboard")
        self.load_companies()

    def change_password(self) -> None:
        dialog = ChangePasswordDialog(self.api_url, self.token, self.user["username"], self)
        if dialog.exec() != QDialog.Accepted or not dialog.new_token:
            return
        self.token = dialog.new_token
        if self.day_page is not None:
            self.day_page.token = self.token
        self.feedback_label.setText(f"<span style='color:{SUCCESS_COLOR};'>Password updated.</span>")

    def handle_logout(self) -> None:
        confirm = QMessageBox.question(self, "Sign out", "Return to sign-in screen?")
        if confirm != QMessageBox.Yes:
            return
        self._call(lambda client: client.logout())
        self.signed_out = True
        self.close()


def launch_app(api_url: Optional[str] = None) -> int:
    api_url = api_url or API_URL
    app = QApplication.instance() or QApplication(sys.argv)
    app.setStyleSheet(THEME_STYLESHEET)

    while True:
        login = LoginDialog(api_url)
        login.setStyleSheet(THEME_STYLESHEET)
        if login.exec() != QDialog.Accepted or not login.session:
            break

        logger.info("Signed in as %s", login.session["user"]["username"])
        window = MainWindow(login.session, api_url)
        window.show()
        app.exec()
        if not window.signed_out:
            break

    return 0


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    sys.exit(launch_app())


if __name__ == "__main__":
    main()
